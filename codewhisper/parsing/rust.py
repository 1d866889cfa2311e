"""
Rust front-end.

Items (fn, struct, enum, union, trait, impl, mod, use), let bindings, control
flow (if, match, for, while, loop), closures and macro invocations. Macro
bodies are token trees and are not looked into. Types are not modelled.
"""

import logging
from typing import Optional

from tree_sitter import Node

from codewhisper.parsing.nodes import NodeTag, UnifiedAstNode
from codewhisper.parsing.treesitter import TreeSitterFrontEnd, TreeTranslator

logger = logging.getLogger(__name__)

CLASS_KINDS = {
    "struct_item": "struct",
    "enum_item": "enum",
    "union_item": "union",
    "trait_item": "trait",
}

LOOP_KINDS = {
    "for_expression": "for_in",
    "while_expression": "while",
    "while_let_expression": "while_let",
    "loop_expression": "loop",
}

STATEMENT_KINDS = {
    "type_item": "type_alias",
    "macro_definition": "macro_rules",
    "break_expression": "break",
    "continue_expression": "continue",
}

BLOCK_KINDS = {
    "block": None,
    "unsafe_block": "unsafe",
    "async_block": "async",
}

CONTROL_FLOW = frozenset({
    "if_expression", "if_let_expression", "match_expression",
    *LOOP_KINDS, "return_expression", "break_expression",
    "continue_expression", "unsafe_block", "async_block", "block",
})

MEMBER_SKIP = frozenset({"attribute_item", "visibility_modifier"})


class RustTranslator(TreeTranslator):
    """Maps tree-sitter-rust nodes onto the unified tree."""

    block_types = frozenset({"block"})

    handlers = {
        **{node_type: "class_def" for node_type in CLASS_KINDS},
        **{node_type: "loop" for node_type in LOOP_KINDS},
        **{node_type: "statement" for node_type in STATEMENT_KINDS},
        **{node_type: "block" for node_type in BLOCK_KINDS},
        "function_item": "function_def",
        "function_signature_item": "function_def",
        "closure_expression": "closure",
        "impl_item": "impl_def",
        "mod_item": "module",
        "use_declaration": "use_declaration",
        "let_declaration": "let_declaration",
        "const_item": "item_binding",
        "static_item": "item_binding",
        "if_expression": "conditional",
        "if_let_expression": "conditional",
        "else_clause": "flatten_clause",
        "match_expression": "match",
        "call_expression": "call",
        "macro_invocation": "macro_call",
        "return_expression": "return_expression",
        "expression_statement": "expression_statement",
    }

    # ------------------------------------------------------------------ items

    def function_def(self, node: Node) -> list[UnifiedAstNode]:
        modifiers = next((c for c in node.children if c.type == "function_modifiers"), None)
        params = [p for p in self.named(node.child_by_field_name("parameters")) if p.type != "attribute_item"]
        attributes = {
            "name": self.text(node.child_by_field_name("name")) or None,
            "param_count": len(params),
            "is_async": self.has_token(modifiers, "async"),
            "kind": "function",
            "has_return_type": node.child_by_field_name("return_type") is not None,
        }
        if any(c.type == "visibility_modifier" for c in node.children):
            attributes["visibility"] = "pub"

        body = node.child_by_field_name("body")
        if body is None:
            attributes["kind"] = "signature"
            return [self.node(NodeTag.FUNCTION_DEF, node, attributes)]
        attributes["brace_style"] = self.brace_style(body)
        return [self.node(NodeTag.FUNCTION_DEF, node, attributes, self.translate(*body.children))]

    def closure(self, node: Node) -> list[UnifiedAstNode]:
        params = self.named(node.child_by_field_name("parameters"))
        attributes = {
            "name": None,
            "param_count": len(params),
            "is_async": self.has_token(node, "async"),
            "kind": "closure",
        }
        body = node.child_by_field_name("body")
        if body is not None and body.type == "block":
            attributes["brace_style"] = self.brace_style(body)
            children = self.translate(*body.children)
        else:
            attributes["expression_body"] = True
            children = [self.node(NodeTag.RETURN, body, {"has_value": True}, self.translate(body))] if body else []
        return [self.node(NodeTag.FUNCTION_DEF, node, attributes, children)]

    def class_def(self, node: Node) -> list[UnifiedAstNode]:
        body = node.child_by_field_name("body")
        members = [c for c in self.named(body) if c.type not in MEMBER_SKIP]
        attributes = {
            "name": self.text(node.child_by_field_name("name")) or None,
            "kind": CLASS_KINDS[node.type],
            "member_count": len(members),
        }
        if body is not None and body.type in ("field_declaration_list", "enum_variant_list", "declaration_list"):
            attributes["brace_style"] = self.brace_style(body)
        children = self.translate(*body.children) if node.type == "trait_item" and body is not None else []
        return [self.node(NodeTag.CLASS_DEF, node, attributes, children)]

    def impl_def(self, node: Node) -> list[UnifiedAstNode]:
        trait = node.child_by_field_name("trait")
        body = node.child_by_field_name("body")
        attributes = {
            "name": self.type_name(node.child_by_field_name("type")),
            "kind": "trait_impl" if trait is not None else "impl",
            "brace_style": self.brace_style(body),
        }
        if trait is not None:
            attributes["trait"] = self.type_name(trait)
        children = self.translate(*body.children) if body is not None else []
        return [self.node(NodeTag.CLASS_DEF, node, attributes, children)]

    def type_name(self, node: Optional[Node]) -> Optional[str]:
        """Short name of a type: ``Vec`` for ``Vec<T>``, ``Map`` for ``a::Map``."""
        while node is not None and node.type in ("generic_type", "scoped_type_identifier"):
            node = node.child_by_field_name("type" if node.type == "generic_type" else "name")
        return self.text(node) or None

    def module(self, node: Node) -> list[UnifiedAstNode]:
        name = self.text(node.child_by_field_name("name")) or None
        body = node.child_by_field_name("body")
        if body is None:
            return [self.node(NodeTag.IMPORT, node, {"name": name, "kind": "mod", "name_count": 1})]
        return [self.node(NodeTag.BLOCK, node, {
            "kind": "module",
            "name": name,
            "brace_style": self.brace_style(body),
        }, self.translate(*body.children))]

    def use_declaration(self, node: Node) -> list[UnifiedAstNode]:
        argument = node.child_by_field_name("argument")
        kind = "path"
        name_count = 1
        name = self.text(argument)
        if argument is not None and argument.type == "use_as_clause":
            name = self.text(argument.child_by_field_name("path"))
        elif argument is not None and argument.type in ("scoped_use_list", "use_list"):
            kind = "group"
            items = argument.child_by_field_name("list") if argument.type == "scoped_use_list" else argument
            name = self.text(argument.child_by_field_name("path"))
            name_count = len(self.named(items))
        elif argument is not None and argument.type == "use_wildcard":
            kind = "glob"
            name_count = 0
            name = name.rsplit("::", 1)[0] if "::" in name else ""
        return [self.node(NodeTag.IMPORT, node, {"name": name or None, "kind": kind, "name_count": name_count})]

    def let_declaration(self, node: Node) -> list[UnifiedAstNode]:
        pattern = node.child_by_field_name("pattern")
        value = node.child_by_field_name("value")
        mutable = any(c.type == "mutable_specifier" for c in node.children)
        attributes = {
            "name": self.text(pattern) if pattern is not None and pattern.type == "identifier" else None,
            "kind": "let_mut" if mutable else "let",
            "declarator_count": 1,
            "has_initializer": value is not None,
        }
        alternative = node.child_by_field_name("alternative")
        if alternative is not None:
            attributes["has_else"] = True
        return [self.node(NodeTag.VAR_DECL, node, attributes, self.translate(value) + self.body(alternative))]

    def item_binding(self, node: Node) -> list[UnifiedAstNode]:
        kind = "const" if node.type == "const_item" else "static"
        if any(c.type == "mutable_specifier" for c in node.children):
            kind = f"{kind}_mut"
        value = node.child_by_field_name("value")
        return [self.node(NodeTag.VAR_DECL, node, {
            "name": self.text(node.child_by_field_name("name")) or None,
            "kind": kind,
            "declarator_count": 1,
            "has_initializer": value is not None,
        }, self.translate(value))]

    # ------------------------------------------------------------------ control flow

    def conditional(self, node: Node) -> list[UnifiedAstNode]:
        attributes = {"kind": "if", "has_else": node.child_by_field_name("alternative") is not None}
        consequence = node.child_by_field_name("consequence")
        if consequence is not None:
            attributes["brace_style"] = self.brace_style(consequence)
        return [self.node(NodeTag.CONDITIONAL, node, attributes, self.flatten(node))]

    def flatten_clause(self, node: Node) -> list[UnifiedAstNode]:
        return self.flatten(node)

    def match(self, node: Node) -> list[UnifiedAstNode]:
        body = node.child_by_field_name("body")
        arms = [arm for arm in self.named(body) if arm.type == "match_arm"]
        children = self.translate(node.child_by_field_name("value"))
        for arm in arms:
            children.extend(self.flatten(arm))
        wildcard = any(self.text(arm.child_by_field_name("pattern")).strip() == "_" for arm in arms)
        return [self.node(NodeTag.CONDITIONAL, node, {
            "kind": "match",
            "arm_count": len(arms),
            "has_else": wildcard,
            "brace_style": self.brace_style(body),
        }, children)]

    def loop(self, node: Node) -> list[UnifiedAstNode]:
        kind = LOOP_KINDS[node.type]
        condition = node.child_by_field_name("condition")
        if node.type == "while_expression" and condition is not None and condition.type == "let_condition":
            kind = "while_let"
        body = node.child_by_field_name("body")
        return [self.node(NodeTag.LOOP, node, {"kind": kind, "brace_style": self.brace_style(body)},
                          self.flatten(node))]

    def return_expression(self, node: Node) -> list[UnifiedAstNode]:
        values = self.named(node)
        return [self.node(NodeTag.RETURN, node, {"has_value": bool(values)}, self.translate(*values))]

    def statement(self, node: Node) -> list[UnifiedAstNode]:
        children = [] if node.type == "macro_definition" else self.translate(*self.named(node))
        return [self.node(NodeTag.STATEMENT, node, {"kind": STATEMENT_KINDS[node.type]}, children)]

    def block(self, node: Node) -> list[UnifiedAstNode]:
        kind = BLOCK_KINDS[node.type]
        if kind is None:
            return [self.node(NodeTag.BLOCK, node, {"brace_style": self.brace_style(node)},
                              self.translate(*node.children))]
        inner = next((c for c in node.named_children if c.type == "block"), None)
        return [self.node(NodeTag.BLOCK, node, {"kind": kind, "brace_style": self.brace_style(inner)},
                          self.flatten(node))]

    # ------------------------------------------------------------------ expressions

    def expression_statement(self, node: Node) -> list[UnifiedAstNode]:
        expressions = self.named(node)
        if not expressions:
            return []
        expression = expressions[0]
        if expression.type in CONTROL_FLOW:
            return self.translate(expression)
        if expression.type in ("assignment_expression", "compound_assignment_expr"):
            operator = expression.child_by_field_name("operator")
            return [self.node(NodeTag.ASSIGNMENT, node, {"operator": self.text(operator) or "="},
                              self.translate(*expression.children))]
        return [self.node(NodeTag.EXPRESSION, node, {}, self.translate(expression))]

    def call(self, node: Node) -> list[UnifiedAstNode]:
        function = node.child_by_field_name("function")
        arguments = node.child_by_field_name("arguments")
        return [self.node(NodeTag.CALL, node, {
            "callee": self.callee_name(function),
            "arg_count": len(self.named(arguments)),
        }, self.translate(function, arguments))]

    def macro_call(self, node: Node) -> list[UnifiedAstNode]:
        tokens = next((c for c in node.children if c.type == "token_tree"), None)
        return [self.node(NodeTag.CALL, node, {
            "callee": self.text(node.child_by_field_name("macro")) or "<macro>",
            "arg_count": self.macro_arg_count(tokens),
            "macro": True,
        })]

    @staticmethod
    def macro_arg_count(tokens: Optional[Node]) -> int:
        """Top-level comma-separated groups inside a macro's delimiters."""
        if tokens is None:
            return 0
        inner = tokens.children[1:-1]
        if not inner:
            return 0
        commas = sum(1 for c in inner if c.type == ",")
        if inner[-1].type == ",":
            commas -= 1
        return commas + 1

    def callee_name(self, node: Optional[Node]) -> str:
        if node is None:
            return "<expression>"
        if node.type in ("identifier", "scoped_identifier", "self"):
            return self.text(node)
        if node.type == "generic_function":
            return self.callee_name(node.child_by_field_name("function"))
        if node.type == "field_expression":
            base = self.callee_name(node.child_by_field_name("value"))
            name = self.text(node.child_by_field_name("field"))
            if base == "<expression>":
                return name or base
            return f"{base}.{name}"
        return "<expression>"


class RustFrontEnd(TreeSitterFrontEnd):
    """Front-end for Rust."""

    translator = RustTranslator

    @property
    def language(self) -> str:
        return "rust"
