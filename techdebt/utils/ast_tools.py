"""AST utilities for techdebt."""
from __future__ import annotations

import ast
from typing import Iterable, List, Set, Tuple


class NormalizingTransformer(ast.NodeTransformer):
    """Drop docstrings and, when ``rename`` is set, normalize identifiers."""

    def __init__(self, identifier_placeholder: str = "ID", rename: bool = True) -> None:
        self.identifier_placeholder = identifier_placeholder
        self.rename = rename

    def visit_Module(self, node: ast.Module) -> ast.AST:  # noqa: N802
        node.body = _strip_docstring(node.body)
        self.generic_visit(node)
        return node

    def visit_Name(self, node: ast.Name) -> ast.AST:  # noqa: N802
        if not self.rename:
            return node
        return ast.copy_location(ast.Name(id=self.identifier_placeholder, ctx=node.ctx), node)

    def visit_Attribute(self, node: ast.Attribute) -> ast.AST:  # noqa: N802
        if not self.rename:
            self.generic_visit(node)
            return node
        new_node = ast.Attribute(
            value=self.visit(node.value),
            attr=self.identifier_placeholder,
            ctx=node.ctx,
        )
        return ast.copy_location(new_node, node)

    def visit_FunctionDef(self, node: ast.FunctionDef) -> ast.AST:  # noqa: N802
        return self._visit_definition(node)

    def visit_AsyncFunctionDef(self, node: ast.AsyncFunctionDef) -> ast.AST:  # noqa: N802
        return self._visit_definition(node)

    def visit_ClassDef(self, node: ast.ClassDef) -> ast.AST:  # noqa: N802
        return self._visit_definition(node)

    def visit_arg(self, node: ast.arg) -> ast.AST:  # noqa: N802
        if self.rename:
            node.arg = self.identifier_placeholder
        return node

    def _visit_definition(self, node):
        if self.rename:
            node.name = self.identifier_placeholder
        node.body = _strip_docstring(node.body)
        self.generic_visit(node)
        return node


def _strip_docstring(body: List[ast.stmt]) -> List[ast.stmt]:
    if (
        body
        and isinstance(body[0], ast.Expr)
        and isinstance(body[0].value, ast.Constant)
        and isinstance(body[0].value.value, str)
    ):
        return body[1:] or [ast.Pass()]
    return body


def safe_parse(source: str) -> Tuple[ast.AST | None, bool]:
    try:
        return ast.parse(source), True
    except (SyntaxError, ValueError):
        return None, False


def normalize_source(tree: ast.AST, placeholder: str = "ID", rename: bool = True) -> str:
    tree = NormalizingTransformer(identifier_placeholder=placeholder, rename=rename).visit(tree)
    ast.fix_missing_locations(tree)
    return ast.unparse(tree)


def iter_functions(tree: ast.AST) -> Iterable[ast.FunctionDef | ast.AsyncFunctionDef]:
    for node in ast.walk(tree):
        if isinstance(node, (ast.FunctionDef, ast.AsyncFunctionDef)):
            yield node


def count_unannotated_parameters(tree: ast.AST) -> int:
    missing = 0
    for node in iter_functions(tree):
        args = list(node.args.posonlyargs) + list(node.args.args) + list(node.args.kwonlyargs)
        if node.args.vararg is not None:
            args.append(node.args.vararg)
        if node.args.kwarg is not None:
            args.append(node.args.kwarg)
        for arg in args:
            if arg.arg in ("self", "cls"):
                continue
            if arg.annotation is None:
                missing += 1
    return missing


def undocumented_definitions(tree: ast.AST) -> Tuple[List[Tuple[str, int]], int]:
    """Return ``(missing, total)`` for function and class docstrings."""
    missing: List[Tuple[str, int]] = []
    total = 0
    for node in ast.walk(tree):
        if isinstance(node, (ast.FunctionDef, ast.AsyncFunctionDef, ast.ClassDef)):
            total += 1
            if ast.get_docstring(node) is None:
                missing.append((node.name, node.lineno))
    return missing, total


def unused_imports(tree: ast.AST) -> List[Tuple[str, int]]:
    """Return ``(bound name, line)`` for imports never referenced in the module."""
    imported: List[Tuple[str, int]] = []
    for node in ast.walk(tree):
        if isinstance(node, ast.Import):
            for alias in node.names:
                bound = alias.asname or alias.name.split(".")[0]
                imported.append((bound, node.lineno))
        elif isinstance(node, ast.ImportFrom):
            if node.module == "__future__":
                continue
            for alias in node.names:
                if alias.name == "*":
                    continue
                imported.append((alias.asname or alias.name, node.lineno))
    if not imported:
        return []
    used = _referenced_names(tree)
    return [(name, line) for name, line in imported if name not in used and name != "_"]


def _referenced_names(tree: ast.AST) -> Set[str]:
    used: Set[str] = set()
    for node in ast.walk(tree):
        if isinstance(node, ast.Name):
            used.add(node.id)
        elif isinstance(node, ast.Assign):
            for target in node.targets:
                if isinstance(target, ast.Name) and target.id == "__all__":
                    used.update(_string_elements(node.value))
        elif isinstance(node, ast.Constant) and isinstance(node.value, str):
            # forward references such as "Path"
            if node.value.isidentifier():
                used.add(node.value)
    return used


def _string_elements(node: ast.AST) -> Set[str]:
    if isinstance(node, (ast.List, ast.Tuple)):
        return {
            elt.value
            for elt in node.elts
            if isinstance(elt, ast.Constant) and isinstance(elt.value, str)
        }
    return set()
