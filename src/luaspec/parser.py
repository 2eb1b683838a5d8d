"""Recursive-descent parser producing a tuple-based AST.

Expression nodes:
    ("nil",) ("true",) ("false",) ("vararg",) ("num", v) ("str", v)
    ("name", n) ("index", obj, key) ("call", fn, args) ("method", obj, name, args)
    ("func", params, is_vararg, body) ("table", fields) ("paren", e)
    ("bin", op, a, b) ("and", a, b) ("or", a, b) ("un", op, e)

Statement nodes:
    ("local", names, exprs) ("assign", targets, exprs) ("callstat", call)
    ("do", block) ("while", cond, block) ("repeat", block, cond)
    ("if", clauses, else_block) ("fornum", var, start, stop, step, block)
    ("forin", names, exprs, block) ("localfunc", name, func)
    ("return", exprs) ("break",)

Covers the Lua 5.1 forms declaration files use; later operator additions
are syntax errors.
"""
from __future__ import annotations

from typing import Any, List, Optional, Tuple

from luaspec.lexer import LuaSyntaxError, Token, tokenize

# (left, right) binding power, following Lua operator precedence
BINARY_PRIORITY = {
    "or": (1, 1), "and": (2, 2),
    "<": (3, 3), ">": (3, 3), "<=": (3, 3), ">=": (3, 3), "~=": (3, 3), "==": (3, 3),
    "..": (9, 8), "+": (10, 10), "-": (10, 10),
    "*": (11, 11), "/": (11, 11), "%": (11, 11),
    "^": (14, 13),
}
UNARY_PRIORITY = 12

_BLOCK_END = frozenset(("end", "else", "elseif", "until"))


class Parser:
    """Parse a token stream into a block (list of statements)."""

    def __init__(self, tokens: List[Token], chunk: str = "chunk"):
        self.tokens = tokens
        self.pos = 0
        self.chunk = chunk

    # token helpers
    def peek(self, offset: int = 0) -> Token:
        return self.tokens[min(self.pos + offset, len(self.tokens) - 1)]

    def advance(self) -> Token:
        tok = self.tokens[self.pos]
        if tok.kind != "eof":
            self.pos += 1
        return tok

    def check(self, value: str) -> bool:
        tok = self.peek()
        return tok.kind in ("op", "keyword") and tok.value == value

    def accept(self, value: str) -> bool:
        if self.check(value):
            self.advance()
            return True
        return False

    def expect(self, value: str, opener: Optional[Token] = None) -> Token:
        if not self.check(value):
            tok = self.peek()
            near = tok.value if tok.kind != "eof" else "<eof>"
            where = f" (to close '{opener.value}' at line {opener.line})" if opener else ""
            raise LuaSyntaxError(f"{self.chunk}:{tok.line}: '{value}' expected near '{near}'{where}")
        return self.advance()

    def expect_name(self) -> str:
        tok = self.peek()
        if tok.kind != "name":
            raise LuaSyntaxError(f"{self.chunk}:{tok.line}: <name> expected near '{tok.value}'")
        self.advance()
        return tok.value

    # blocks and statements
    def parse_chunk(self) -> List[Tuple]:
        block = self.parse_block()
        tok = self.peek()
        if tok.kind != "eof":
            raise LuaSyntaxError(f"{self.chunk}:{tok.line}: '<eof>' expected near '{tok.value}'")
        return block

    def parse_block(self) -> List[Tuple]:
        stmts: List[Tuple] = []
        while True:
            tok = self.peek()
            if tok.kind == "eof" or (tok.kind == "keyword" and tok.value in _BLOCK_END):
                return stmts
            if tok.kind == "keyword" and tok.value == "return":
                self.advance()
                exprs: List[Tuple] = []
                if not self._at_block_end() and not self.check(";"):
                    exprs = self.parse_exprlist()
                self.accept(";")
                stmts.append(("return", exprs))
                if not self._at_block_end():
                    raise LuaSyntaxError(f"{self.chunk}:{self.peek().line}: 'end' expected after return")
                return stmts
            stmt = self.parse_statement()
            if stmt is not None:
                stmts.append(stmt)

    def _at_block_end(self) -> bool:
        tok = self.peek()
        return tok.kind == "eof" or (tok.kind == "keyword" and tok.value in _BLOCK_END)

    def parse_statement(self) -> Optional[Tuple]:
        tok = self.peek()
        if tok.kind == "op" and tok.value == ";":
            self.advance()
            return None
        if tok.kind == "keyword":
            kw = tok.value
            if kw == "if":
                return self.parse_if()
            if kw == "while":
                self.advance()
                cond = self.parse_expr()
                self.expect("do")
                body = self.parse_block()
                self.expect("end", tok)
                return ("while", cond, body)
            if kw == "do":
                self.advance()
                body = self.parse_block()
                self.expect("end", tok)
                return ("do", body)
            if kw == "for":
                return self.parse_for()
            if kw == "repeat":
                self.advance()
                body = self.parse_block()
                self.expect("until", tok)
                return ("repeat", body, self.parse_expr())
            if kw == "function":
                return self.parse_function_stat()
            if kw == "local":
                self.advance()
                if self.accept("function"):
                    name = self.expect_name()
                    return ("localfunc", name, self.parse_funcbody())
                return self.parse_local()
            if kw == "break":
                self.advance()
                return ("break",)
        return self.parse_expr_statement()

    def parse_if(self) -> Tuple:
        opener = self.advance()
        clauses = []
        cond = self.parse_expr()
        self.expect("then")
        clauses.append((cond, self.parse_block()))
        else_block = None
        while True:
            if self.accept("elseif"):
                cond = self.parse_expr()
                self.expect("then")
                clauses.append((cond, self.parse_block()))
            elif self.accept("else"):
                else_block = self.parse_block()
                self.expect("end", opener)
                break
            else:
                self.expect("end", opener)
                break
        return ("if", clauses, else_block)

    def parse_for(self) -> Tuple:
        opener = self.advance()
        first = self.expect_name()
        if self.accept("="):
            start = self.parse_expr()
            self.expect(",")
            stop = self.parse_expr()
            step = self.parse_expr() if self.accept(",") else None
            self.expect("do")
            body = self.parse_block()
            self.expect("end", opener)
            return ("fornum", first, start, stop, step, body)
        names = [first]
        while self.accept(","):
            names.append(self.expect_name())
        self.expect("in")
        exprs = self.parse_exprlist()
        self.expect("do")
        body = self.parse_block()
        self.expect("end", opener)
        return ("forin", names, exprs, body)

    def parse_function_stat(self) -> Tuple:
        self.advance()
        target: Tuple = ("name", self.expect_name())
        is_method = False
        while self.check(".") or self.check(":"):
            sep = self.advance().value
            key = self.expect_name()
            target = ("index", target, ("str", key))
            if sep == ":":
                is_method = True
                break
        func = self.parse_funcbody(is_method=is_method)
        return ("assign", [target], [func])

    def parse_local(self) -> Tuple:
        names = [self.expect_name()]
        self._skip_attrib()
        while self.accept(","):
            names.append(self.expect_name())
            self._skip_attrib()
        exprs = self.parse_exprlist() if self.accept("=") else []
        return ("local", names, exprs)

    def _skip_attrib(self) -> None:
        # <const> / <close>
        if self.check("<"):
            self.advance()
            self.expect_name()
            self.expect(">")

    def parse_expr_statement(self) -> Tuple:
        expr = self.parse_suffixed()
        if self.check("=") or self.check(","):
            targets = [expr]
            while self.accept(","):
                targets.append(self.parse_suffixed())
            self.expect("=")
            exprs = self.parse_exprlist()
            for target in targets:
                if target[0] not in ("name", "index"):
                    raise LuaSyntaxError(f"{self.chunk}:{self.peek().line}: syntax error near '='")
            return ("assign", targets, exprs)
        if expr[0] not in ("call", "method"):
            raise LuaSyntaxError(f"{self.chunk}:{self.peek().line}: syntax error near '{self.peek().value}'")
        return ("callstat", expr)

    # expressions
    def parse_exprlist(self) -> List[Tuple]:
        exprs = [self.parse_expr()]
        while self.accept(","):
            exprs.append(self.parse_expr())
        return exprs

    def parse_expr(self, limit: int = 0) -> Tuple:
        tok = self.peek()
        if (tok.kind == "keyword" and tok.value == "not") or (tok.kind == "op" and tok.value in ("-", "#")):
            self.advance()
            operand = self.parse_expr(UNARY_PRIORITY)
            if tok.value == "-" and operand[0] == "num":
                left: Tuple = ("num", -operand[1])
            else:
                left = ("un", tok.value, operand)
        else:
            left = self.parse_simple()
        while True:
            tok = self.peek()
            if tok.kind not in ("op", "keyword") or tok.value not in BINARY_PRIORITY:
                return left
            lprio, rprio = BINARY_PRIORITY[tok.value]
            if lprio <= limit:
                return left
            self.advance()
            right = self.parse_expr(rprio)
            if tok.value == "and":
                left = ("and", left, right)
            elif tok.value == "or":
                left = ("or", left, right)
            else:
                left = ("bin", tok.value, left, right)

    def parse_simple(self) -> Tuple:
        tok = self.peek()
        if tok.kind == "number":
            self.advance()
            return ("num", tok.value)
        if tok.kind == "string":
            self.advance()
            return ("str", tok.value)
        if tok.kind == "keyword":
            if tok.value == "nil":
                self.advance()
                return ("nil",)
            if tok.value == "true":
                self.advance()
                return ("true",)
            if tok.value == "false":
                self.advance()
                return ("false",)
            if tok.value == "function":
                self.advance()
                return self.parse_funcbody()
        if tok.kind == "op":
            if tok.value == "...":
                self.advance()
                return ("vararg",)
            if tok.value == "{":
                return self.parse_table()
        return self.parse_suffixed()

    def parse_primary(self) -> Tuple:
        tok = self.peek()
        if tok.kind == "name":
            self.advance()
            return ("name", tok.value)
        if tok.kind == "op" and tok.value == "(":
            self.advance()
            inner = self.parse_expr()
            self.expect(")", tok)
            return ("paren", inner)
        near = tok.value if tok.kind != "eof" else "<eof>"
        raise LuaSyntaxError(f"{self.chunk}:{tok.line}: unexpected symbol near '{near}'")

    def parse_suffixed(self) -> Tuple:
        expr = self.parse_primary()
        while True:
            tok = self.peek()
            if tok.kind == "op" and tok.value == ".":
                self.advance()
                expr = ("index", expr, ("str", self.expect_name()))
            elif tok.kind == "op" and tok.value == "[":
                self.advance()
                key = self.parse_expr()
                self.expect("]", tok)
                expr = ("index", expr, key)
            elif tok.kind == "op" and tok.value == ":":
                self.advance()
                name = self.expect_name()
                expr = ("method", expr, name, self.parse_args())
            elif (tok.kind == "op" and tok.value in ("(", "{")) or tok.kind == "string":
                expr = ("call", expr, self.parse_args())
            else:
                return expr

    def parse_args(self) -> List[Tuple]:
        tok = self.peek()
        if tok.kind == "string":
            self.advance()
            return [("str", tok.value)]
        if tok.kind == "op" and tok.value == "{":
            return [self.parse_table()]
        self.expect("(")
        if self.accept(")"):
            return []
        args = self.parse_exprlist()
        self.expect(")", tok)
        return args

    def parse_funcbody(self, is_method: bool = False) -> Tuple:
        opener = self.expect("(")
        params: List[str] = ["self"] if is_method else []
        is_vararg = False
        if not self.check(")"):
            while True:
                if self.accept("..."):
                    is_vararg = True
                    break
                params.append(self.expect_name())
                if not self.accept(","):
                    break
        self.expect(")", opener)
        body = self.parse_block()
        self.expect("end", opener)
        return ("func", params, is_vararg, body)

    def parse_table(self) -> Tuple:
        opener = self.expect("{")
        fields: List[Tuple[str, Any, Tuple]] = []
        while not self.check("}"):
            tok = self.peek()
            if tok.kind == "op" and tok.value == "[":
                self.advance()
                key = self.parse_expr()
                self.expect("]", tok)
                self.expect("=")
                fields.append(("keyed", key, self.parse_expr()))
            elif tok.kind == "name" and self.peek(1).kind == "op" and self.peek(1).value == "=":
                self.advance()
                self.advance()
                fields.append(("keyed", ("str", tok.value), self.parse_expr()))
            else:
                fields.append(("pos", None, self.parse_expr()))
            if not (self.accept(",") or self.accept(";")):
                break
        self.expect("}", opener)
        return ("table", fields)


def parse(source: str, chunk: str = "chunk") -> List[Tuple]:
    """Parse Lua source text into a block of statements."""
    return Parser(tokenize(source, chunk), chunk).parse_chunk()
