
import ast
from typing import Iterable, List

UNSAFE_BUILTINS = {
    "__import__", "open", "exec", "eval", "compile", "breakpoint",
    "globals", "locals", "vars", "input", "exit", "quit", "help",
    "getattr", "setattr", "delattr", "memoryview",
}

# Introspection attributes that lead from a harmless object back to frames and globals.
FRAME_ATTRIBUTES = {
    "gi_frame", "gi_code", "cr_frame", "cr_code", "ag_frame", "ag_code",
    "f_globals", "f_locals", "f_builtins", "f_back", "f_code", "tb_frame", "tb_next",
}

def _is_dunder(name: str) -> bool:
    return name.startswith("__") and name.endswith("__")

class SecurityVisitor(ast.NodeVisitor):
    def __init__(self, allowed_modules: Iterable[str] = (), allow_private: bool = True):
        self.allowed_modules = set(allowed_modules)
        self.allow_private = allow_private
        self.errors = []

    def _check_module(self, name: str, label: str):
        if name.split('.')[0] not in self.allowed_modules:
            self.errors.append(f"{label} '{name}' is not allowed")

    def visit_Import(self, node):
        for alias in node.names:
            self._check_module(alias.name, "Import of")
        self.generic_visit(node)

    def visit_ImportFrom(self, node):
        if node.level:
            self.errors.append("Relative imports are not allowed")
        elif node.module:
            self._check_module(node.module, "Import from")
        self.generic_visit(node)

    def visit_Call(self, node):
        if isinstance(node.func, ast.Name):
            if node.func.id in UNSAFE_BUILTINS:
                self.errors.append(f"Call to '{node.func.id}' is not allowed")
        self.generic_visit(node)

    def visit_Attribute(self, node):
        if not self.allow_private and (_is_dunder(node.attr) or node.attr in FRAME_ATTRIBUTES):
            self.errors.append(f"Access to attribute '{node.attr}' is not allowed")
        self.generic_visit(node)

    def visit_ExceptHandler(self, node):
        if not self.allow_private and node.type is None:
            self.errors.append("Bare except is not allowed")
        self.generic_visit(node)

    def visit_Name(self, node):
        if not self.allow_private and _is_dunder(node.id):
            self.errors.append(f"Access to name '{node.id}' is not allowed")
        self.generic_visit(node)

def validate_code(code: str, allowed_modules: Iterable[str] = (), allow_private: bool = True,
                  filename: str = "<sandbox>") -> List[str]:
    """
    Parses code into AST and checks for unsafe operations.
    Returns a list of error strings. If list is empty, code is considered safe(r).

    `allow_private=False` additionally rejects `__dunder__` names and attributes and
    frame introspection attributes, which closes the usual
    `().__class__.__subclasses__()` escape.
    """
    try:
        tree = ast.parse(code, filename=filename)
    except SyntaxError as e:
        return [f"SyntaxError: {str(e)}"]

    visitor = SecurityVisitor(allowed_modules, allow_private)
    visitor.visit(tree)
    return visitor.errors
