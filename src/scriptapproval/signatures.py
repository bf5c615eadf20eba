"""Method signatures that grant unrestricted access when approved.

Pending signatures in this set are flagged so an administrator can tell them
apart, and ``clear_dangerous`` removes them from the approved list.
"""

from __future__ import annotations

_DANGEROUS_SIGNATURES: frozenset[str] = frozenset(
    {
        "method groovy.lang.GroovyObject getProperty java.lang.String",
        "method groovy.lang.GroovyObject invokeMethod java.lang.String java.lang.Object",
        "method groovy.lang.GroovyObject setProperty java.lang.String java.lang.Object",
        "method java.io.File delete",
        "method java.lang.Class getClassLoader",
        "method java.lang.Class newInstance",
        "method java.lang.Runtime exec java.lang.String",
        "method java.lang.reflect.AccessibleObject setAccessible boolean",
        "method java.lang.reflect.Method invoke java.lang.Object java.lang.Object[]",
        "new java.io.File java.lang.String",
        "new java.io.FileInputStream java.lang.String",
        "new java.io.FileOutputStream java.lang.String",
        "staticMethod hudson.model.Hudson getInstance",
        "staticMethod java.lang.Runtime getRuntime",
        "staticMethod java.lang.System exit int",
        "staticMethod java.lang.System getProperties",
        "staticMethod java.lang.System getenv",
        "staticMethod java.lang.System setProperty java.lang.String java.lang.String",
        "staticMethod jenkins.model.Jenkins getInstance",
        "staticMethod org.codehaus.groovy.runtime.DefaultGroovyMethods execute java.lang.String",
        "staticMethod org.codehaus.groovy.runtime.DefaultGroovyMethods getText java.io.File",
        "staticMethod org.codehaus.groovy.runtime.DefaultGroovyMethods getText java.net.URL",
    }
)


def is_dangerous(signature: str) -> bool:
    """Whether approving *signature* would hand out unrestricted access."""
    return " ".join(signature.split()) in _DANGEROUS_SIGNATURES
