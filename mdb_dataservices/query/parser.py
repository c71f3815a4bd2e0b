"""
Parser for the document query dialect.

Supported shape:

    SELECT * | SELECT VALUE COUNT(1)
    FROM <alias>
    [WHERE <condition>]
    [ORDER BY <alias>.<path> [ASC|DESC], ...]
    [OFFSET <n|@param> LIMIT <n|@param>]

Conditions support AND / OR / NOT, parentheses, the comparison operators
= <> != > < >= <=, [NOT] IN (...), ARRAY_CONTAINS(path, value[, partial])
and bare boolean paths. Operands are alias-qualified property paths,
@parameters, string/number/boolean/null literals and {'key': value}
object literals.

Backends execute the resulting tree: the in-memory store evaluates it
directly and the MongoDB store translates it to a filter document.
"""

import re
from dataclasses import dataclass
from functools import lru_cache
from typing import Any, List, Optional, Tuple, Union

from ..exceptions import UnsupportedSpecificationError

# ============================================================================
# TREE
# ============================================================================


@dataclass(frozen=True)
class PropertyPath:
    parts: Tuple[str, ...]

    @property
    def dotted(self) -> str:
        return ".".join(self.parts)


@dataclass(frozen=True)
class Parameter:
    name: str


@dataclass(frozen=True)
class Literal:
    value: Any


@dataclass(frozen=True)
class ObjectLiteral:
    items: Tuple[Tuple[str, "Operand"], ...]


Operand = Union[PropertyPath, Parameter, Literal, ObjectLiteral]


@dataclass(frozen=True)
class Comparison:
    left: Operand
    operator: str
    right: Operand


@dataclass(frozen=True)
class InList:
    operand: Operand
    values: Tuple[Operand, ...]
    negated: bool = False


@dataclass(frozen=True)
class ArrayContains:
    array: PropertyPath
    value: Operand
    partial: bool = False


@dataclass(frozen=True)
class And:
    terms: Tuple["Condition", ...]


@dataclass(frozen=True)
class Or:
    terms: Tuple["Condition", ...]


@dataclass(frozen=True)
class Not:
    term: "Condition"


Condition = Union[Comparison, InList, ArrayContains, And, Or, Not, Literal, PropertyPath]


@dataclass(frozen=True)
class OrderBy:
    path: PropertyPath
    descending: bool = False


@dataclass(frozen=True)
class ParsedQuery:
    is_count: bool
    alias: str
    where: Optional[Condition] = None
    order_by: Tuple[OrderBy, ...] = ()
    offset: Optional[Operand] = None
    limit: Optional[Operand] = None


# ============================================================================
# TOKENIZER
# ============================================================================

_TOKEN_PATTERN = re.compile(
    r"""
    (?P<ws>\s+)
  | (?P<string>'(?:[^'\\]|\\.)*'|"(?:[^"\\]|\\.)*")
  | (?P<number>-?\d+(?:\.\d+)?(?:[eE][+-]?\d+)?)
  | (?P<param>@[A-Za-z_][A-Za-z0-9_]*)
  | (?P<ident>[A-Za-z_][A-Za-z0-9_]*)
  | (?P<op><>|!=|>=|<=|=|<|>)
  | (?P<punct>[(),.*{}:])
    """,
    re.VERBOSE,
)

COMPARISON_OPERATORS = ("=", "<>", "!=", ">", "<", ">=", "<=")


@dataclass(frozen=True)
class _Token:
    kind: str
    text: str
    position: int


def _unescape(raw: str) -> str:
    body = raw[1:-1]
    return re.sub(r"\\(.)", lambda m: m.group(1), body)


def tokenize(text: str) -> List[_Token]:
    tokens = []
    position = 0
    while position < len(text):
        match = _TOKEN_PATTERN.match(text, position)
        if match is None:
            raise UnsupportedSpecificationError(
                f"Unexpected character {text[position]!r} at position {position}",
                specification_type="SqlSpecification",
            )
        kind = match.lastgroup
        if kind != "ws":
            tokens.append(_Token(kind, match.group(), position))
        position = match.end()
    tokens.append(_Token("eof", "", position))
    return tokens


# ============================================================================
# PARSER
# ============================================================================


class _Parser:
    def __init__(self, text: str):
        self.text = text
        self.tokens = tokenize(text)
        self.index = 0
        self.alias = ""

    # -- token helpers -------------------------------------------------

    @property
    def current(self) -> _Token:
        return self.tokens[self.index]

    def _advance(self) -> _Token:
        token = self.tokens[self.index]
        self.index += 1
        return token

    def _is_keyword(self, *words: str) -> bool:
        token = self.current
        return token.kind == "ident" and token.text.upper() in words

    def _accept_keyword(self, word: str) -> bool:
        if self._is_keyword(word):
            self.index += 1
            return True
        return False

    def _expect_keyword(self, word: str) -> None:
        if not self._accept_keyword(word):
            self._fail(f"expected {word}")

    def _accept(self, text: str) -> bool:
        if self.current.kind in ("punct", "op") and self.current.text == text:
            self.index += 1
            return True
        return False

    def _expect(self, text: str) -> None:
        if not self._accept(text):
            self._fail(f"expected '{text}'")

    def _fail(self, message: str) -> None:
        token = self.current
        found = token.text or "end of query"
        raise UnsupportedSpecificationError(
            f"Unsupported query: {message} at position {token.position} (found {found!r})",
            specification_type="SqlSpecification",
            context={"query": self.text},
        )

    # -- grammar -------------------------------------------------------

    def parse(self) -> ParsedQuery:
        self._expect_keyword("SELECT")
        is_count = self._projection()
        self._expect_keyword("FROM")
        if self.current.kind != "ident":
            self._fail("expected a collection alias")
        self.alias = self._advance().text

        where = None
        if self._accept_keyword("WHERE"):
            where = self._or()

        order_by: List[OrderBy] = []
        if self._accept_keyword("ORDER"):
            self._expect_keyword("BY")
            order_by.append(self._order_item())
            while self._accept(","):
                order_by.append(self._order_item())

        offset = limit = None
        if self._accept_keyword("OFFSET"):
            offset = self._paging_operand()
            self._expect_keyword("LIMIT")
            limit = self._paging_operand()

        if self.current.kind != "eof":
            self._fail("unexpected trailing input")
        return ParsedQuery(
            is_count=is_count,
            alias=self.alias,
            where=where,
            order_by=tuple(order_by),
            offset=offset,
            limit=limit,
        )

    def _projection(self) -> bool:
        if self._accept("*"):
            return False
        if self._accept_keyword("VALUE"):
            self._expect_keyword("COUNT")
            self._expect("(")
            if not (self._accept("*") or self._accept_number()):
                self._fail("expected COUNT(1)")
            self._expect(")")
            return True
        self._fail("only SELECT * and SELECT VALUE COUNT(1) projections are supported")

    def _accept_number(self) -> bool:
        if self.current.kind == "number":
            self.index += 1
            return True
        return False

    def _order_item(self) -> OrderBy:
        path = self._path()
        descending = False
        if self._accept_keyword("DESC"):
            descending = True
        else:
            self._accept_keyword("ASC")
        return OrderBy(path, descending)

    def _paging_operand(self) -> Operand:
        token = self.current
        if token.kind == "param":
            self.index += 1
            return Parameter(token.text)
        if token.kind == "number" and re.fullmatch(r"\d+", token.text):
            self.index += 1
            return Literal(int(token.text))
        self._fail("expected a non-negative integer or parameter")

    def _or(self) -> Condition:
        terms = [self._and()]
        while self._accept_keyword("OR"):
            terms.append(self._and())
        return terms[0] if len(terms) == 1 else Or(tuple(terms))

    def _and(self) -> Condition:
        terms = [self._not()]
        while self._accept_keyword("AND"):
            terms.append(self._not())
        return terms[0] if len(terms) == 1 else And(tuple(terms))

    def _not(self) -> Condition:
        if self._accept_keyword("NOT"):
            return Not(self._not())
        return self._primary()

    def _primary(self) -> Condition:
        if self._accept("("):
            condition = self._or()
            self._expect(")")
            return condition
        if self._accept_keyword("ARRAY_CONTAINS"):
            return self._array_contains()

        left = self._operand()
        if self.current.kind == "op":
            operator = self._advance().text
            if operator == "!=":
                operator = "<>"
            return Comparison(left, operator, self._operand())
        negated = False
        if self._is_keyword("NOT") and self.tokens[self.index + 1].text.upper() == "IN":
            self.index += 1
            negated = True
        if self._accept_keyword("IN"):
            self._expect("(")
            values = [self._operand()]
            while self._accept(","):
                values.append(self._operand())
            self._expect(")")
            return InList(left, tuple(values), negated)
        if isinstance(left, PropertyPath) or (
            isinstance(left, Literal) and isinstance(left.value, bool)
        ):
            return left
        self._fail("expected a comparison")

    def _array_contains(self) -> ArrayContains:
        self._expect("(")
        array = self._path()
        self._expect(",")
        value = self._operand()
        partial = False
        if self._accept(","):
            flag = self._operand()
            if not (isinstance(flag, Literal) and isinstance(flag.value, bool)):
                self._fail("expected true or false")
            partial = flag.value
        self._expect(")")
        return ArrayContains(array, value, partial)

    def _operand(self) -> Operand:
        token = self.current
        if token.kind == "param":
            self.index += 1
            return Parameter(token.text)
        if token.kind == "string":
            self.index += 1
            return Literal(_unescape(token.text))
        if token.kind == "number":
            self.index += 1
            text = token.text
            return Literal(float(text) if any(ch in text for ch in ".eE") else int(text))
        if token.kind == "punct" and token.text == "{":
            return self._object_literal()
        if token.kind == "ident":
            upper = token.text.upper()
            if upper in ("TRUE", "FALSE"):
                self.index += 1
                return Literal(upper == "TRUE")
            if upper == "NULL":
                self.index += 1
                return Literal(None)
            return self._path()
        self._fail("expected an operand")

    def _object_literal(self) -> ObjectLiteral:
        self._expect("{")
        items = []
        if not self._accept("}"):
            while True:
                key_token = self._advance()
                if key_token.kind == "string":
                    key = _unescape(key_token.text)
                elif key_token.kind == "ident":
                    key = key_token.text
                else:
                    self.index -= 1
                    self._fail("expected an object key")
                self._expect(":")
                items.append((key, self._operand()))
                if self._accept("}"):
                    break
                self._expect(",")
        return ObjectLiteral(tuple(items))

    def _path(self) -> PropertyPath:
        token = self.current
        if token.kind != "ident" or token.text != self.alias:
            self._fail(f"expected a property path starting with '{self.alias}.'")
        self.index += 1
        parts = []
        while self._accept("."):
            if self.current.kind != "ident":
                self._fail("expected a property name")
            parts.append(self._advance().text)
        if not parts:
            self._fail("expected a property path, not the bare alias")
        return PropertyPath(tuple(parts))


@lru_cache(maxsize=512)
def parse_query(text: str) -> ParsedQuery:
    """
    Parse query text into a ParsedQuery.

    Raises:
        UnsupportedSpecificationError: If the text falls outside the supported dialect
    """
    return _Parser(text).parse()


def resolve_paging(operand: Optional[Operand], parameters: dict, clause: str) -> Optional[int]:
    """Resolve an OFFSET/LIMIT operand to a non-negative int."""
    if operand is None:
        return None
    value = operand.value if isinstance(operand, Literal) else parameters.get(operand.name)
    if isinstance(value, bool) or not isinstance(value, int) or value < 0:
        raise UnsupportedSpecificationError(
            f"{clause} must be a non-negative integer, got {value!r}",
            specification_type="SqlSpecification",
        )
    return value
