"""
Bootstrap run inside the Sandbox B kernel before any snippet.

`agent.interpreter` sends this file's source as the kernel's first cell, so it
uses nothing outside the standard library. Afterwards, code in the user
namespace sees a reduced set of builtins, and `import` only admits allowed
modules, each handed over as a namespace of its public members.
"""


def _install_sandbox(allowed_modules):
    import builtins
    import sys
    import types

    blocked = {
        "open", "exec", "eval", "compile", "input", "breakpoint", "help",
        "globals", "locals", "vars", "getattr", "setattr", "delattr", "memoryview",
        "exit", "quit", "copyright", "credits", "license", "display", "get_ipython",
    }
    allowed = frozenset(allowed_modules)
    real_import = builtins.__import__
    views = {}

    def public_view(module):
        if module.__name__ not in views:
            names = getattr(module, "__all__", None) or [n for n in dir(module) if not n.startswith("_")]
            members = {}
            for name in names:
                value = getattr(module, name, None)
                if value is None or isinstance(value, types.ModuleType):
                    continue
                members[name] = value
            views[module.__name__] = members
        return types.SimpleNamespace(**views[module.__name__])

    def guarded_import(name, globals=None, locals=None, fromlist=(), level=0):
        if level or name.partition(".")[0] not in allowed:
            raise ImportError(f"Import of '{name}' is not allowed")
        return public_view(real_import(name, globals, locals, fromlist, level))

    safe = {
        name: value for name, value in vars(builtins).items()
        if name not in blocked and not (name.startswith("__") and name != "__build_class__")
    }
    safe["__import__"] = guarded_import

    user_ns = get_ipython().user_ns
    user_ns["__builtins__"] = safe
    user_ns.pop("_install_sandbox", None)
    return sys.version.split()[0]
