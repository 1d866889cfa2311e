"""
ECMAScript front-end (JavaScript and TypeScript).

Covers the statement grammar that matters for pattern learning: function
declarations and expressions, arrow functions, classes with methods and
fields, var/let/const, loops, if/else, switch, try/catch/finally,
import/export and CommonJS ``require``. TypeScript annotations only show up
as ``has_return_type``.
"""

import logging
from typing import Optional

from tree_sitter import Node

from codewhisper.parsing.nodes import NodeTag, UnifiedAstNode
from codewhisper.parsing.treesitter import TreeSitterFrontEnd, TreeTranslator

logger = logging.getLogger(__name__)

FUNCTION_KINDS = {
    "function_declaration": "function",
    "generator_function_declaration": "function",
    "function_expression": "expression",
    "function": "expression",
    "generator_function": "expression",
    "arrow_function": "arrow",
    "method_definition": "method",
    "function_signature": "signature",
    "method_signature": "signature",
    "abstract_method_signature": "signature",
}

LOOP_KINDS = {
    "for_statement": "for",
    "for_in_statement": "for_in",
    "while_statement": "while",
    "do_statement": "do_while",
}

STATEMENT_KINDS = {
    "throw_statement": "throw",
    "break_statement": "break",
    "continue_statement": "continue",
    "debugger_statement": "debugger",
    "type_alias_declaration": "type_alias",
}

CLASS_TYPES = frozenset({"class_declaration", "class", "abstract_class_declaration"})


class EcmaScriptTranslator(TreeTranslator):
    """Maps tree-sitter-javascript/typescript nodes onto the unified tree."""

    block_types = frozenset({"statement_block"})

    handlers = {
        **{node_type: "function_def" for node_type in FUNCTION_KINDS},
        **{node_type: "class_def" for node_type in CLASS_TYPES},
        **{node_type: "loop" for node_type in LOOP_KINDS},
        **{node_type: "statement" for node_type in STATEMENT_KINDS},
        "interface_declaration": "interface_def",
        "enum_declaration": "enum_def",
        "lexical_declaration": "variable_declaration",
        "variable_declaration": "variable_declaration",
        "field_definition": "field_def",
        "public_field_definition": "field_def",
        "if_statement": "conditional",
        "else_clause": "flatten_clause",
        "switch_statement": "switch",
        "try_statement": "try_statement",
        "return_statement": "return_statement",
        "import_statement": "import_statement",
        "export_statement": "export_statement",
        "expression_statement": "expression_statement",
        "call_expression": "call",
        "new_expression": "call",
        "statement_block": "block",
        "class_static_block": "static_block",
    }

    # ------------------------------------------------------------------ declarations

    def function_def(self, node: Node) -> list[UnifiedAstNode]:
        kind = FUNCTION_KINDS[node.type]
        name_node = node.child_by_field_name("name")
        name = self.text(name_node) if name_node is not None and name_node.type != "computed_property_name" else None
        if node.type == "method_definition" and name == "constructor":
            kind = "constructor"

        parameters = node.child_by_field_name("parameters")
        params = self.named(parameters)
        if parameters is None and node.child_by_field_name("parameter") is not None:
            params = [node.child_by_field_name("parameter")]
        attributes = {
            "name": name,
            "param_count": len(params),
            "is_async": self.has_token(node, "async"),
            "kind": kind,
            "default_param_count": sum(1 for p in params if self._has_default(p)),
        }
        if self.language == "typescript" and node.type != "arrow_function":
            attributes["has_return_type"] = node.child_by_field_name("return_type") is not None
        if self.has_token(node, "*"):
            attributes["generator"] = True
        if self.has_token(node, "static"):
            attributes["static"] = True

        body = node.child_by_field_name("body")
        if body is None:
            attributes["kind"] = "signature"
            return [self.node(NodeTag.FUNCTION_DEF, node, attributes)]
        if body.type in self.block_types:
            attributes["brace_style"] = self.brace_style(body)
            return [self.node(NodeTag.FUNCTION_DEF, node, attributes, self.translate(*body.children))]
        attributes["expression_body"] = True
        returned = self.node(NodeTag.RETURN, body, {"has_value": True}, self.translate(body))
        return [self.node(NodeTag.FUNCTION_DEF, node, attributes, [returned])]

    @staticmethod
    def _has_default(parameter: Node) -> bool:
        return parameter.type == "assignment_pattern" or parameter.child_by_field_name("value") is not None

    def class_def(self, node: Node) -> list[UnifiedAstNode]:
        heritage = next((c for c in node.named_children if c.type == "class_heritage"), None)
        extends = heritage is not None and (
            self.has_token(heritage, "extends")
            or any(c.type == "extends_clause" for c in heritage.named_children)
        )
        body = node.child_by_field_name("body")
        attributes = {
            "name": self.text(node.child_by_field_name("name")) or None,
            "kind": "class",
            "base_count": 1 if extends else 0,
            "brace_style": self.brace_style(body),
        }
        children = self.translate(*body.children) if body is not None else []
        return [self.node(NodeTag.CLASS_DEF, node, attributes, children)]

    def interface_def(self, node: Node) -> list[UnifiedAstNode]:
        return [self.node(NodeTag.CLASS_DEF, node, {
            "name": self.text(node.child_by_field_name("name")) or None,
            "kind": "interface",
            "base_count": 0,
            "brace_style": self.brace_style(node.child_by_field_name("body")),
        })]

    def enum_def(self, node: Node) -> list[UnifiedAstNode]:
        return [self.node(NodeTag.CLASS_DEF, node, {
            "name": self.text(node.child_by_field_name("name")) or None,
            "kind": "enum",
            "member_count": len(self.named(node.child_by_field_name("body"))),
        })]

    def variable_declaration(self, node: Node) -> list[UnifiedAstNode]:
        if node.type == "variable_declaration":
            kind = "var"
        else:
            kind = self.text(node.child_by_field_name("kind") or node.children[0])
        declarators = [c for c in node.named_children if c.type == "variable_declarator"]
        values = [d.child_by_field_name("value") for d in declarators]
        name = None
        if declarators:
            name_node = declarators[0].child_by_field_name("name")
            if name_node is not None and name_node.type == "identifier":
                name = self.text(name_node)

        if len(declarators) == 1 and self._is_require(values[0]):
            return [self.node(NodeTag.IMPORT, node, {"name": name, "kind": "require", "name_count": 1})]
        return [self.node(NodeTag.VAR_DECL, node, {
            "name": name,
            "kind": kind,
            "declarator_count": len(declarators),
            "has_initializer": any(value is not None for value in values),
        }, self.translate(*values))]

    def _is_require(self, value: Optional[Node]) -> bool:
        return (
            value is not None
            and value.type == "call_expression"
            and self.text(value.child_by_field_name("function")) == "require"
        )

    def field_def(self, node: Node) -> list[UnifiedAstNode]:
        name_node = node.child_by_field_name("property") or node.child_by_field_name("name")
        value = node.child_by_field_name("value")
        return [self.node(NodeTag.VAR_DECL, node, {
            "name": self.text(name_node) or None,
            "kind": "field",
            "declarator_count": 1,
            "has_initializer": value is not None,
        }, self.translate(value))]

    # ------------------------------------------------------------------ control flow

    def conditional(self, node: Node) -> list[UnifiedAstNode]:
        attributes = {"kind": "if", "has_else": node.child_by_field_name("alternative") is not None}
        consequence = node.child_by_field_name("consequence")
        if consequence is not None and consequence.type in self.block_types:
            attributes["brace_style"] = self.brace_style(consequence)
        return [self.node(NodeTag.CONDITIONAL, node, attributes, self.flatten(node))]

    def flatten_clause(self, node: Node) -> list[UnifiedAstNode]:
        return self.flatten(node)

    def loop(self, node: Node) -> list[UnifiedAstNode]:
        kind = LOOP_KINDS[node.type]
        if node.type == "for_in_statement" and self.has_token(node, "of"):
            kind = "for_of"
        attributes = {"kind": kind}
        body = node.child_by_field_name("body")
        if body is not None and body.type in self.block_types:
            attributes["brace_style"] = self.brace_style(body)
        return [self.node(NodeTag.LOOP, node, attributes, self.flatten(node))]

    def switch(self, node: Node) -> list[UnifiedAstNode]:
        body = node.child_by_field_name("body")
        cases = self.named(body)
        children = self.translate(node.child_by_field_name("value"))
        for case in cases:
            children.extend(self.flatten(case))
        return [self.node(NodeTag.CONDITIONAL, node, {
            "kind": "switch",
            "has_else": any(case.type == "switch_default" for case in cases),
            "case_count": sum(1 for case in cases if case.type == "switch_case"),
            "brace_style": self.brace_style(body),
        }, children)]

    def try_statement(self, node: Node) -> list[UnifiedAstNode]:
        body = node.child_by_field_name("body")
        handler = node.child_by_field_name("handler")
        finalizer = node.child_by_field_name("finalizer")
        children = self.body(body)
        for clause in (handler, finalizer):
            if clause is not None:
                children.extend(self.flatten(clause))
        return [self.node(NodeTag.TRY, node, {
            "has_catch": handler is not None,
            "has_finally": finalizer is not None,
            "brace_style": self.brace_style(body),
        }, children)]

    def return_statement(self, node: Node) -> list[UnifiedAstNode]:
        values = self.named(node)
        return [self.node(NodeTag.RETURN, node, {"has_value": bool(values)}, self.translate(*values))]

    def statement(self, node: Node) -> list[UnifiedAstNode]:
        return [self.node(NodeTag.STATEMENT, node, {"kind": STATEMENT_KINDS[node.type]},
                          self.translate(*self.named(node)))]

    def block(self, node: Node) -> list[UnifiedAstNode]:
        return [self.node(NodeTag.BLOCK, node, {"brace_style": self.brace_style(node)},
                          self.translate(*node.children))]

    def static_block(self, node: Node) -> list[UnifiedAstNode]:
        body = node.child_by_field_name("body")
        return [self.node(NodeTag.BLOCK, node, {"kind": "static_init", "brace_style": self.brace_style(body)},
                          self.flatten(node))]

    # ------------------------------------------------------------------ modules

    def import_statement(self, node: Node) -> list[UnifiedAstNode]:
        clause = next((c for c in node.named_children if c.type == "import_clause"), None)
        kind = "side_effect"
        name_count = 0
        if clause is not None:
            parts = {c.type: c for c in clause.named_children}
            specifiers = len(self.named(parts.get("named_imports")))
            name_count = specifiers + ("identifier" in parts) + ("namespace_import" in parts)
            if "named_imports" in parts:
                kind = "named"
            elif "namespace_import" in parts:
                kind = "namespace"
            else:
                kind = "default"
        return [self.node(NodeTag.IMPORT, node, {
            "name": self.string_value(node.child_by_field_name("source")),
            "kind": kind,
            "name_count": name_count,
        })]

    def export_statement(self, node: Node) -> list[UnifiedAstNode]:
        declaration = node.child_by_field_name("declaration")
        value = node.child_by_field_name("value")
        source = node.child_by_field_name("source")
        if declaration is not None:
            nodes = self.translate(declaration)
        elif value is not None and (value.type in FUNCTION_KINDS or value.type in CLASS_TYPES):
            nodes = self.translate(value)
        elif value is not None:
            return [self.node(NodeTag.EXPRESSION, node, {"exported": True}, self.translate(value))]
        elif source is not None:
            clause = next((c for c in node.named_children if c.type == "export_clause"), None)
            return [self.node(NodeTag.IMPORT, node, {
                "name": self.string_value(source),
                "kind": "re_export",
                "name_count": len(self.named(clause)),
            })]
        else:
            return [self.node(NodeTag.STATEMENT, node, {"kind": "export_list"})]
        if nodes:
            nodes[0].attributes["exported"] = True
            nodes[0].span = self.span(node)
        return nodes

    def string_value(self, node: Optional[Node]) -> Optional[str]:
        if node is None:
            return None
        return self.text(node).strip("'\"`")

    # ------------------------------------------------------------------ expressions

    def expression_statement(self, node: Node) -> list[UnifiedAstNode]:
        expressions = self.named(node)
        if not expressions:
            return []
        expression = expressions[0]
        if expression.type in ("assignment_expression", "augmented_assignment_expression"):
            operator = expression.child_by_field_name("operator")
            return [self.node(NodeTag.ASSIGNMENT, node, {"operator": self.text(operator) or "="},
                              self.translate(*expression.children))]
        return [self.node(NodeTag.EXPRESSION, node, {}, self.translate(*expressions))]

    def call(self, node: Node) -> list[UnifiedAstNode]:
        function = node.child_by_field_name("function") or node.child_by_field_name("constructor")
        arguments = node.child_by_field_name("arguments")
        if function is not None and function.type == "import":
            return [self.node(NodeTag.IMPORT, node, {"name": None, "kind": "dynamic", "name_count": 0},
                              self.translate(arguments))]
        if arguments is None:
            arg_count = 0
        elif arguments.type == "arguments":
            arg_count = len(self.named(arguments))
        else:
            # Tagged template
            arg_count = 1
        return [self.node(NodeTag.CALL, node, {
            "callee": self.callee_name(function),
            "arg_count": arg_count,
        }, self.translate(function, arguments))]

    def callee_name(self, node: Optional[Node]) -> str:
        """``a.b.c`` for plain member chains, the last property otherwise."""
        if node is None:
            return "<expression>"
        if node.type in ("identifier", "this", "super"):
            return self.text(node)
        if node.type == "member_expression":
            prop = node.child_by_field_name("property")
            base = self.callee_name(node.child_by_field_name("object"))
            name = self.text(prop)
            if base == "<expression>":
                return name or base
            return f"{base}.{name}"
        return "<expression>"


class EcmaScriptFrontEnd(TreeSitterFrontEnd):
    """Front-end for JavaScript and TypeScript."""

    dialects = ("typescript",)
    translator = EcmaScriptTranslator

    @property
    def language(self) -> str:
        return "javascript"

    def grammar_for(self, language: str, source_file: str) -> str:
        if language == "typescript":
            return "tsx" if source_file.endswith(".tsx") else "typescript"
        return "javascript"
