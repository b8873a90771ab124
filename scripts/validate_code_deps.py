#!/usr/bin/env python3
"""Validate the perpquant import graph.

Checks:
1. No circular dependencies between modules
2. Layer rules respected (a layer may import its own or lower layers only)

Only module-level imports count. Imports inside functions or under
``if TYPE_CHECKING:`` are how config and the CLI reach up a layer lazily.
"""

from __future__ import annotations

import ast
import sys
from pathlib import Path

LAYERS = {
    0: ["perpquant/core/exceptions.py", "perpquant/core/time.py"],
    1: ["perpquant/core/config.py", "perpquant/core/log.py", "perpquant/core/"],
    2: ["perpquant/quant/"],
    3: ["perpquant/strategy/"],
    4: ["perpquant/backtest/"],
    5: ["perpquant/cli.py"],
}


def get_module_layer(module_path: str) -> int | None:
    """Layer of a repo-relative path or dotted module path; first match wins."""
    path = module_path.replace(".", "/") if "/" not in module_path else module_path
    for layer, patterns in LAYERS.items():
        for pattern in patterns:
            if path.removesuffix(".py").startswith(pattern.removesuffix(".py")):
                return layer
    return None


def _is_type_checking_block(node: ast.stmt) -> bool:
    if not isinstance(node, ast.If):
        return False
    test = node.test
    return (isinstance(test, ast.Name) and test.id == "TYPE_CHECKING") or (
        isinstance(test, ast.Attribute) and test.attr == "TYPE_CHECKING"
    )


def extract_imports(file_path: Path) -> list[str]:
    """Module-level imports of a Python file."""
    try:
        tree = ast.parse(file_path.read_text(encoding="utf-8"))
    except (SyntaxError, UnicodeDecodeError):
        return []

    imports: list[str] = []
    for node in tree.body:
        if _is_type_checking_block(node):
            continue
        if isinstance(node, ast.Import):
            imports.extend(alias.name for alias in node.names)
        elif isinstance(node, ast.ImportFrom) and node.module:
            imports.append(node.module)
    return imports


def check_circular_deps(imports: dict[str, set[str]]) -> list[str]:
    """Detect circular dependencies using DFS."""
    errors: list[str] = []
    seen_cycles: set[frozenset[str]] = set()

    def visit(module: str, path: list[str]) -> None:
        if module in path:
            cycle = path[path.index(module) :] + [module]
            key = frozenset(cycle)
            if key not in seen_cycles:
                seen_cycles.add(key)
                errors.append(f"CIRCULAR DEPENDENCY: {' -> '.join(cycle)}")
            return
        for dep in imports.get(module, ()):
            visit(dep, path + [module])

    for module in imports:
        visit(module, [])
    return errors


def check_layer_violations(rel_path: str, imports: list[str]) -> list[str]:
    """Imports from a higher layer than the importing module."""
    module_layer = get_module_layer(rel_path)
    if module_layer is None:
        return []

    errors = []
    for imp in imports:
        if not imp.startswith("perpquant."):
            continue
        import_layer = get_module_layer(imp)
        if import_layer is not None and import_layer > module_layer:
            errors.append(f"LAYER VIOLATION: {rel_path} (layer {module_layer}) imports {imp} (layer {import_layer})")
    return errors


def validate(repo_root: Path) -> tuple[list[str], int]:
    """Return ``(errors, files_checked)`` for the package under ``repo_root``."""
    files = [f for f in sorted(repo_root.glob("perpquant/**/*.py")) if "__pycache__" not in f.parts]

    errors: list[str] = []
    graph: dict[str, set[str]] = {}
    for file in files:
        rel = file.relative_to(repo_root).as_posix()
        imports = extract_imports(file)
        graph[rel.removesuffix(".py").replace("/", ".")] = set(imports)
        errors.extend(check_layer_violations(rel, imports))

    errors.extend(check_circular_deps(graph))
    return errors, len(files)


def main() -> int:
    repo_root = Path(__file__).resolve().parent.parent
    print("Validating perpquant import layers...")

    errors, checked = validate(repo_root)
    if errors:
        print("\nDependency validation failed:\n")
        for error in errors:
            print(f"  {error}")
        print(f"\n{len(errors)} violation(s) found.")
        return 1

    print("No circular dependencies or layer violations detected.")
    print(f"   Checked {checked} Python files.")
    return 0


if __name__ == "__main__":
    sys.exit(main())
