"""
Python front-end built on the standard library ``ast`` module.

A file with a syntax error is split into top-level chunks; each chunk that
parses contributes its statements, each chunk that does not becomes an Error
node with a diagnostic.
"""

import ast
import io
import logging
import re
import tokenize
from typing import Optional

from codewhisper.parsing.base import LanguageFrontEnd, ParseBudget
from codewhisper.parsing.nodes import Diagnostic, NodeTag, ParseResult, SourceSpan, UnifiedAstNode

logger = logging.getLogger(__name__)

# Lines that continue the previous top-level statement.
_CONTINUATION = re.compile(r"^(else|elif|except|finally|case)\b|^[)\]}]")

_LOOP_KINDS = {
    ast.For: "for",
    ast.AsyncFor: "async_for",
    ast.While: "while",
}

_COMPREHENSION_KINDS = {
    ast.ListComp: "list_comprehension",
    ast.SetComp: "set_comprehension",
    ast.DictComp: "dict_comprehension",
    ast.GeneratorExp: "generator",
}


class _Translator:
    """Converts ``ast`` nodes into unified nodes."""

    def __init__(self, source_file: str, budget: ParseBudget):
        self.file = source_file
        self.budget = budget
        self._count = 0
        self._class_depth = 0

    def span(self, node: ast.AST) -> SourceSpan:
        line = getattr(node, "lineno", 1)
        col = getattr(node, "col_offset", 0)
        end_line = getattr(node, "end_lineno", None) or line
        end_col = getattr(node, "end_col_offset", None)
        return SourceSpan(self.file, line, col, end_line, col if end_col is None else end_col)

    def make(self, tag: NodeTag, node: ast.AST, attributes: dict, children: list[UnifiedAstNode]) -> UnifiedAstNode:
        self._count += 1
        if self._count % 128 == 0:
            self.budget.check()
        return UnifiedAstNode(tag, self.span(node), attributes, children)

    # ------------------------------------------------------------------ statements

    def statements(self, body: list[ast.stmt]) -> list[UnifiedAstNode]:
        nodes: list[UnifiedAstNode] = []
        for index, stmt in enumerate(body):
            if index == 0 and _is_docstring(stmt):
                continue
            nodes.extend(self.statement(stmt))
        return nodes

    def statement(self, node: ast.stmt) -> list[UnifiedAstNode]:
        if isinstance(node, (ast.FunctionDef, ast.AsyncFunctionDef)):
            return [self.function(node)]
        if isinstance(node, ast.ClassDef):
            return [self.class_def(node)]
        if isinstance(node, (ast.Import, ast.ImportFrom)):
            return [self.import_stmt(node)]
        if isinstance(node, (ast.For, ast.AsyncFor, ast.While)):
            return [self.loop(node)]
        if isinstance(node, ast.If):
            return [self.if_stmt(node)]
        if isinstance(node, ast.Try) or type(node).__name__ == "TryStar":
            return [self.try_stmt(node)]
        if isinstance(node, ast.Match):
            return [self.match_stmt(node)]
        if isinstance(node, ast.Return):
            children = self.expression(node.value) if node.value else []
            return [self.make(NodeTag.RETURN, node, {"has_value": node.value is not None}, children)]
        if isinstance(node, (ast.Assign, ast.AnnAssign)):
            return [self.assignment(node)]
        if isinstance(node, ast.AugAssign):
            return [self.make(NodeTag.ASSIGNMENT, node, {"operator": _operator(node.op) + "="},
                              self.expression(node.value))]
        if isinstance(node, (ast.With, ast.AsyncWith)):
            children: list[UnifiedAstNode] = []
            for item in node.items:
                children.extend(self.expression(item.context_expr))
            children.extend(self.statements(node.body))
            kind = "async_with" if isinstance(node, ast.AsyncWith) else "with"
            return [self.make(NodeTag.BLOCK, node, {"kind": kind}, children)]
        if isinstance(node, ast.Expr):
            return [self.make(NodeTag.EXPRESSION, node, {}, self.expression(node.value))]

        kind = type(node).__name__.lower()
        children = []
        for child in ast.iter_child_nodes(node):
            if isinstance(child, ast.expr):
                children.extend(self.expression(child))
        return [self.make(NodeTag.STATEMENT, node, {"kind": kind}, children)]

    def function(self, node: ast.FunctionDef | ast.AsyncFunctionDef) -> UnifiedAstNode:
        kind = "method" if self._class_depth else "function"
        if kind == "method" and node.name == "__init__":
            kind = "constructor"
        attributes = {
            "name": node.name,
            "param_count": _param_count(node.args),
            "is_async": isinstance(node, ast.AsyncFunctionDef),
            "kind": kind,
            "default_param_count": len(node.args.defaults) + sum(1 for d in node.args.kw_defaults if d is not None),
            "has_return_type": node.returns is not None,
        }
        if node.decorator_list:
            attributes["decorator_count"] = len(node.decorator_list)
        saved, self._class_depth = self._class_depth, 0
        try:
            body = self.statements(node.body)
        finally:
            self._class_depth = saved
        return self.make(NodeTag.FUNCTION_DEF, node, attributes, body)

    def class_def(self, node: ast.ClassDef) -> UnifiedAstNode:
        attributes = {
            "name": node.name,
            "kind": "class",
            "base_count": len(node.bases),
        }
        if node.decorator_list:
            attributes["decorator_count"] = len(node.decorator_list)
        self._class_depth += 1
        try:
            body = self.statements(node.body)
        finally:
            self._class_depth -= 1
        return self.make(NodeTag.CLASS_DEF, node, attributes, body)

    def import_stmt(self, node: ast.Import | ast.ImportFrom) -> UnifiedAstNode:
        if isinstance(node, ast.Import):
            name = node.names[0].name
            kind = "import"
        else:
            name = "." * node.level + (node.module or "")
            kind = "from_import"
            if any(alias.name == "*" for alias in node.names):
                kind = "star_import"
        return self.make(NodeTag.IMPORT, node, {
            "name": name,
            "kind": kind,
            "name_count": len(node.names),
        }, [])

    def loop(self, node: ast.For | ast.AsyncFor | ast.While) -> UnifiedAstNode:
        if isinstance(node, ast.While):
            children = self.expression(node.test)
        else:
            children = self.expression(node.iter)
        children.extend(self.statements(node.body))
        attributes = {"kind": _LOOP_KINDS[type(node)]}
        if node.orelse:
            attributes["has_else"] = True
            children.extend(self.statements(node.orelse))
        return self.make(NodeTag.LOOP, node, attributes, children)

    def if_stmt(self, node: ast.If) -> UnifiedAstNode:
        children = self.expression(node.test)
        children.extend(self.statements(node.body))
        has_else = bool(node.orelse)
        if len(node.orelse) == 1 and isinstance(node.orelse[0], ast.If):
            # elif chain: nested Conditional, as for `else if` in brace languages
            children.append(self.if_stmt(node.orelse[0]))
        else:
            children.extend(self.statements(node.orelse))
        return self.make(NodeTag.CONDITIONAL, node, {"kind": "if", "has_else": has_else}, children)

    def match_stmt(self, node: ast.Match) -> UnifiedAstNode:
        children = self.expression(node.subject)
        has_wildcard = False
        for case in node.cases:
            if isinstance(case.pattern, ast.MatchAs) and case.pattern.pattern is None and case.guard is None:
                has_wildcard = True
            children.extend(self.statements(case.body))
        return self.make(NodeTag.CONDITIONAL, node, {
            "kind": "match",
            "has_else": has_wildcard,
            "arm_count": len(node.cases),
        }, children)

    def try_stmt(self, node: ast.AST) -> UnifiedAstNode:
        children = self.statements(node.body)
        for handler in node.handlers:
            children.extend(self.statements(handler.body))
        children.extend(self.statements(node.orelse))
        children.extend(self.statements(node.finalbody))
        return self.make(NodeTag.TRY, node, {
            "has_catch": bool(node.handlers),
            "has_finally": bool(node.finalbody),
            "handler_count": len(node.handlers),
        }, children)

    def assignment(self, node: ast.Assign | ast.AnnAssign) -> UnifiedAstNode:
        targets = node.targets if isinstance(node, ast.Assign) else [node.target]
        value = node.value
        children = self.expression(value) if value is not None else []
        if all(isinstance(target, ast.Name) for target in targets):
            return self.make(NodeTag.VAR_DECL, node, {
                "name": targets[0].id,
                "kind": "annotated" if isinstance(node, ast.AnnAssign) else "assign",
                "declarator_count": len(targets),
                "has_initializer": value is not None,
            }, children)
        if all(isinstance(target, (ast.Tuple, ast.List, ast.Name)) for target in targets):
            return self.make(NodeTag.VAR_DECL, node, {
                "name": None,
                "kind": "unpack",
                "declarator_count": len(targets),
                "has_initializer": True,
            }, children)
        return self.make(NodeTag.ASSIGNMENT, node, {"operator": "="}, children)

    # ------------------------------------------------------------------ expressions

    def expression(self, node: Optional[ast.AST]) -> list[UnifiedAstNode]:
        """Structural nodes (calls, lambdas, comprehensions) within an expression."""
        if node is None:
            return []
        if isinstance(node, ast.Call):
            children: list[UnifiedAstNode] = []
            for arg in node.args:
                children.extend(self.expression(arg))
            for keyword in node.keywords:
                children.extend(self.expression(keyword.value))
            if isinstance(node.func, ast.Attribute):
                callee_nodes = self.expression(node.func.value)
            elif isinstance(node.func, ast.Name):
                callee_nodes = []
            else:
                callee_nodes = self.expression(node.func)
            return callee_nodes + [self.make(NodeTag.CALL, node, {
                "callee": _dotted_name(node.func),
                "arg_count": len(node.args) + len(node.keywords),
            }, children)]
        if isinstance(node, ast.Lambda):
            body = [self.make(NodeTag.RETURN, node.body, {"has_value": True}, self.expression(node.body))]
            return [self.make(NodeTag.FUNCTION_DEF, node, {
                "name": None,
                "param_count": _param_count(node.args),
                "is_async": False,
                "kind": "lambda",
                "expression_body": True,
            }, body)]
        if type(node) in _COMPREHENSION_KINDS:
            children = []
            for generator in node.generators:
                children.extend(self.expression(generator.iter))
            if isinstance(node, ast.DictComp):
                children.extend(self.expression(node.key))
                children.extend(self.expression(node.value))
            else:
                children.extend(self.expression(node.elt))
            return [self.make(NodeTag.LOOP, node, {"kind": _COMPREHENSION_KINDS[type(node)]}, children)]
        if isinstance(node, ast.IfExp):
            children = self.expression(node.test) + self.expression(node.body) + self.expression(node.orelse)
            return [self.make(NodeTag.CONDITIONAL, node, {"kind": "ternary", "has_else": True}, children)]

        nodes: list[UnifiedAstNode] = []
        for child in ast.iter_child_nodes(node):
            nodes.extend(self.expression(child))
        return nodes


def _is_docstring(node: ast.stmt) -> bool:
    return (
        isinstance(node, ast.Expr)
        and isinstance(node.value, ast.Constant)
        and isinstance(node.value.value, str)
    )


def _param_count(args: ast.arguments) -> int:
    count = len(args.posonlyargs) + len(args.args) + len(args.kwonlyargs)
    if args.vararg:
        count += 1
    if args.kwarg:
        count += 1
    return count


def _dotted_name(node: ast.AST) -> str:
    if isinstance(node, ast.Name):
        return node.id
    if isinstance(node, ast.Attribute):
        return f"{_dotted_name(node.value)}.{node.attr}"
    if isinstance(node, ast.Call):
        return _dotted_name(node.func)
    return "<expression>"


def _operator(op: ast.operator) -> str:
    symbols = {
        ast.Add: "+", ast.Sub: "-", ast.Mult: "*", ast.Div: "/", ast.FloorDiv: "//",
        ast.Mod: "%", ast.Pow: "**", ast.LShift: "<<", ast.RShift: ">>",
        ast.BitOr: "|", ast.BitAnd: "&", ast.BitXor: "^", ast.MatMult: "@",
    }
    return symbols.get(type(op), "?")


def split_top_level(source: str) -> list[tuple[int, str]]:
    """
    Split source into top-level chunks.

    A chunk starts at a non-blank, non-comment line in column 0 that does not
    continue the previous statement. Decorators stay with what they decorate.

    Returns:
        (first line number, chunk text) pairs
    """
    chunks: list[tuple[int, list[str]]] = []
    pending_decorator = False
    for number, line in enumerate(source.split("\n"), start=1):
        stripped = line.strip()
        starts_chunk = (
            bool(stripped)
            and not line[0].isspace()
            and not stripped.startswith("#")
            and not _CONTINUATION.match(stripped)
            and not pending_decorator
        )
        if starts_chunk or not chunks:
            chunks.append((number, [line]))
        else:
            chunks[-1][1].append(line)
        if stripped and not line[0].isspace():
            pending_decorator = stripped.startswith("@")
    return [(start, "\n".join(lines)) for start, lines in chunks]


class PythonFrontEnd(LanguageFrontEnd):
    """Front-end for Python source."""

    @property
    def language(self) -> str:
        return "python"

    def tokenize(self, source: str, budget: Optional[ParseBudget] = None) -> list[tokenize.TokenInfo]:
        tokens = []
        readline = io.StringIO(source).readline
        for index, token in enumerate(tokenize.generate_tokens(readline)):
            if budget is not None and index % 256 == 0:
                budget.check()
            tokens.append(token)
        return tokens

    def build_tree(
        self,
        source: str,
        source_file: str,
        budget: ParseBudget,
        language: str,
    ) -> ParseResult:
        translator = _Translator(source_file, budget)
        try:
            module = ast.parse(source, filename=source_file)
        except SyntaxError as exc:
            logger.debug(f"Syntax error in {source_file}: {exc.msg}; parsing top-level chunks")
            return self._build_partial(source, source_file, budget, language, translator)

        budget.check()
        children = translator.statements(module.body)
        tree = self.module_node(source, source_file, children)
        return ParseResult(tree=tree, language=language)

    def _build_partial(
        self,
        source: str,
        source_file: str,
        budget: ParseBudget,
        language: str,
        translator: _Translator,
    ) -> ParseResult:
        children: list[UnifiedAstNode] = []
        diagnostics: list[Diagnostic] = []
        first_chunk = True

        for start_line, text in split_top_level(source):
            budget.check()
            if not text.strip():
                continue
            try:
                chunk = ast.parse(text, filename=source_file)
            except SyntaxError as exc:
                line = start_line + (exc.lineno or 1) - 1
                column = max((exc.offset or 1) - 1, 0)
                diagnostic = Diagnostic(exc.msg, line, column)
                diagnostics.append(diagnostic)
                lines = text.split("\n")
                end_line = start_line + len(lines) - 1
                children.append(self.error_node(source_file, diagnostic, end_line, len(lines[-1])))
                first_chunk = False
                continue
            ast.increment_lineno(chunk, start_line - 1)
            if first_chunk:
                children.extend(translator.statements(chunk.body))
            else:
                # Only the module's first statement can be a docstring.
                for stmt in chunk.body:
                    children.extend(translator.statement(stmt))
            first_chunk = False

        tree = self.module_node(source, source_file, children)
        return ParseResult(tree=tree, language=language, diagnostics=diagnostics)
