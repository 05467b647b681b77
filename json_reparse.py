"""
json_reparse.py v1.0
Repair JSON whose strings and keys are delimited by single quotes, when the
same single quotes may also appear *inside* those strings.

═══════════════════════════════════════════════════════════════════════════════
Why this is not a one-pass fix
═══════════════════════════════════════════════════════════════════════════════

In ``['Bob O'Rielly']`` nothing in the text says which of the three ``'``
characters are delimiters.  The parser therefore keeps several *guesses*
alive at once.  Every guess is an independent hypothesis of the repaired
string with its own parser state; guesses only fork at apostrophes, and at
the end of the pass every guess is run through a strict JSON parser.  Only
the ones that parse are returned.

Decisions at an apostrophe, first match wins:

1. ``brute_force(position) -> bool`` -- True means "try both": a sibling
   keeps the apostrophe literal, the current guess turns it into ``"``.
   Every apostrophe answered this way doubles the number of guesses.
2. ``heuristic(position)`` -- caller logic.  Return a ``Resolution``, or
   ``None`` after editing ``position.guess`` directly, or ``DEFER`` to fall
   through.
3. Built-in lookahead heuristics driven by the JSON context of the guess
   (array element, object key, object value, nested value):
   - does a terminator (``,`` ``:`` ``]`` ``}``) follow this quote?
   - is the *next* quote followed by a terminator?  If so the text in between
     is folded into the guess in one go (an "auto-fill" span).
   ``hard=True`` additionally forks the alternatives the heuristics rejected.

NOTE: all double quotes in the input are assumed to be escaped already
(``\\"``).  Unescaped double quotes need a custom ``heuristic``.

NOTE: this is not built for speed or big documents.  Worst case is O(2^n) in
the number of ambiguous apostrophes; bound it with your predicates or with
``max_guesses``.

Debug output is off by default.  Enable by setting JSON_REPARSE_DEBUG=1.

Public API
- reparse(text, brute_force=None, heuristic=None, hard=False, max_guesses=None) -> List[str]
- reparse_json(text, return_dict=False, **options) -> Any
- scan(...) -> List[Guess]       (the raw guesses, before validation)
- select(guesses) -> List[str]   (strict-JSON filter)
- classify(results) -> Outcome
"""

from __future__ import annotations

import json
import os as _os
import re
from dataclasses import dataclass, field, fields
from enum import Enum
from typing import Any, Callable, Iterator, List, NamedTuple, Optional, Tuple, Union

_SENTINEL = object()

# Optional speed-ups
try:
    import orjson  # type: ignore

    _USE_ORJSON = True
except Exception:
    orjson = None  # type: ignore
    _USE_ORJSON = False

_DEBUG = _os.environ.get("JSON_REPARSE_DEBUG", "").strip() not in (
    "",
    "0",
    "false",
    "False",
)

# Keep error payloads and debug lines bounded
_PREVIEW_LIMIT = 4000


# ─────────────────────────────────────────────────────────────────────────────
# Scalar decomposition
# ─────────────────────────────────────────────────────────────────────────────


class Scalar(NamedTuple):
    """One Unicode scalar value and the UTF-16 code units it occupied."""

    value: str
    units: int


def utf16_units(char: str) -> int:
    # Lone surrogates are passed through as a single unit.
    return 2 if ord(char) > 0xFFFF else 1


class ScalarSequence:
    """
    Lazy, restartable view of ``text`` as scalar values.

    Python already indexes ``str`` by code point, so the interesting part is
    ``units``: positions reported to hooks include the UTF-16 offset as well,
    which is what callers coming from 16-bit string environments expect.
    """

    def __init__(self, text: str) -> None:
        self.text = text

    def __iter__(self) -> Iterator[Scalar]:
        for ch in self.text:
            yield Scalar(ch, utf16_units(ch))

    def __len__(self) -> int:
        return len(self.text)

    @property
    def units(self) -> int:
        return sum(s.units for s in self)


# ─────────────────────────────────────────────────────────────────────────────
# Guess state
# ─────────────────────────────────────────────────────────────────────────────


class JsonContext(Enum):
    ARRAY = "array"
    FIELD = "field"
    OBJECT_VALUE = "object_value"
    VALUE = "value"
    NONE = "none"


@dataclass(frozen=True)
class FrozenGuess:
    """Read-only snapshot of a ``Guess`` (handed to brute-force predicates)."""

    text: str
    in_string: bool
    escape_pending: bool
    array_depth: int
    object_depth: int
    in_object_field: bool
    in_object_value: bool
    context: JsonContext
    auto_fill: int
    fills: Tuple[Tuple[int, str], ...]


@dataclass
class Guess:
    """
    One hypothesis of the repaired string plus the parser state behind it.

    ``parts``     - append-only output buffer (use ``emit``; read ``text``)
    ``auto_fill`` - upcoming input characters already folded into ``parts``
    ``fills``     - ``(start, consumed)`` for every auto-fill span, where
                    ``consumed`` is the exact input slice the counter skips
    """

    parts: List[str] = field(default_factory=list)
    in_string: bool = False
    escape_pending: bool = False
    array_depth: int = 0
    object_depth: int = 0
    in_object_field: bool = False
    in_object_value: bool = False
    context: JsonContext = JsonContext.NONE
    auto_fill: int = 0
    fills: List[Tuple[int, str]] = field(default_factory=list)

    @property
    def text(self) -> str:
        return "".join(self.parts)

    def emit(self, s: str) -> None:
        self.parts.append(s)

    def branch(self) -> "Guess":
        return Guess(
            parts=list(self.parts),
            in_string=self.in_string,
            escape_pending=self.escape_pending,
            array_depth=self.array_depth,
            object_depth=self.object_depth,
            in_object_field=self.in_object_field,
            in_object_value=self.in_object_value,
            context=self.context,
            auto_fill=self.auto_fill,
            fills=list(self.fills),
        )

    def freeze(self) -> FrozenGuess:
        values = {f.name: getattr(self, f.name) for f in fields(self) if f.name != "parts"}
        values["fills"] = tuple(self.fills)
        return FrozenGuess(text=self.text, **values)

    # -- structural tracking -------------------------------------------------

    def consume(self, c: str) -> None:
        """Append a non-apostrophe character and update the nesting state."""
        self.parts.append(c)

        if self.in_string:
            if self.escape_pending:
                self.escape_pending = False
            elif c == "\\":
                self.escape_pending = True
            return

        if c == "{":
            self.in_object_field = True
            self.context = JsonContext.FIELD
            self.object_depth += 1
        elif c == ":":
            self.in_object_field = False
            self.in_object_value = True
            self.context = JsonContext.OBJECT_VALUE
        elif c == "}":
            self.object_depth -= 1
            self._recompute_context()
            # Back in the enclosing object's value.
            self.in_object_value = self.context is JsonContext.OBJECT_VALUE
        elif c == "[":
            self.array_depth += 1
            self.context = JsonContext.ARRAY
        elif c == "]":
            self.array_depth -= 1
            self._recompute_context()
        elif c == "," and self.context is JsonContext.OBJECT_VALUE and self.in_object_value:
            self.in_object_value = False
            self.in_object_field = True
            self.context = JsonContext.FIELD

    def _recompute_context(self) -> None:
        in_array = self.array_depth > 0
        in_object = self.object_depth > 0
        if in_array and not in_object:
            self.context = JsonContext.ARRAY
        elif in_object and not in_array:
            self.context = JsonContext.OBJECT_VALUE
        elif in_array and in_object:
            self.context = JsonContext.VALUE
        else:
            self.context = JsonContext.NONE

    # -- apostrophe outcomes -------------------------------------------------

    def open_string(self) -> None:
        self.parts.append('"')
        self.in_string = True

    def close_string(self) -> None:
        self.parts.append('"')
        self.in_string = False

    def keep_literal(self) -> None:
        self.parts.append("'")

    def adopt_span(self, start: int, span: str) -> None:
        # The apostrophe stays literal, the span is taken as-is and the next
        # apostrophe becomes the closing quote.
        self.parts.append("'" + span + '"')
        self.in_string = False
        self.auto_fill = len(span) + 1
        self.fills.append((start, span + "'"))


# ─────────────────────────────────────────────────────────────────────────────
# Hook contract
# ─────────────────────────────────────────────────────────────────────────────


@dataclass(frozen=True)
class Position:
    """
    Where an apostrophe was found.

    ``index``      - UTF-16 offset of the apostrophe in the original text
    ``character``  - code point offset of the apostrophe
    ``preceding``  - original text before the apostrophe
    ``following``  - original text after the apostrophe
    ``in_string``  - whether the guess believes it is inside a string
    ``guess``      - ``FrozenGuess`` for brute-force predicates, the live
                     ``Guess`` for heuristics
    """

    index: int
    character: int
    preceding: str
    following: str
    in_string: bool
    guess: Union[Guess, FrozenGuess]


@dataclass(frozen=True)
class Resolution:
    """
    What a heuristic decided for one apostrophe.

    ``quote`` replaces the apostrophe and may be any text (``"``, ``'``,
    ``\\"`` ...); ``in_string`` is the string state afterwards.
    """

    quote: str
    in_string: bool


# Returned by a heuristic to hand the apostrophe to the built-in rules.
DEFER = object()

BruteForce = Callable[[Position], bool]
Heuristic = Callable[[Position], Any]


# ─────────────────────────────────────────────────────────────────────────────
# Default lookahead heuristics
# ─────────────────────────────────────────────────────────────────────────────

# Whitespace before the terminator is tolerated on purpose.
_TERMINATORS = {
    JsonContext.FIELD: r"[:]",
    JsonContext.ARRAY: r"[,\]]",
    JsonContext.OBJECT_VALUE: r"[,}]",
    JsonContext.VALUE: r"[,}\]]",
    JsonContext.NONE: r"\Z",
}

_RE_DELIMITER_FOLLOWING = {
    ctx: re.compile(r"\s*" + term) for ctx, term in _TERMINATORS.items()
}
_RE_NEXT_VALID_QUOTE = {
    ctx: re.compile(r"([^']*)'\s*" + term) for ctx, term in _TERMINATORS.items()
}


def _terminator_context(guess: Guess) -> JsonContext:
    if guess.in_object_field:
        return JsonContext.FIELD
    return guess.context


def _delimiter_following(ctx: JsonContext, following: str) -> bool:
    return _RE_DELIMITER_FOLLOWING[ctx].match(following) is not None


def _next_valid_quote(ctx: JsonContext, following: str) -> Optional[str]:
    """Text up to the next apostrophe, if that apostrophe is followed by a terminator."""
    m = _RE_NEXT_VALID_QUOTE[ctx].match(following)
    if not m:
        return None
    span = m.group(1)
    # A trailing unescaped backslash would escape the closing quote.
    if (len(span) - len(span.rstrip("\\"))) % 2:
        return None
    return span


# ─────────────────────────────────────────────────────────────────────────────
# Branch manager + decision engine
# ─────────────────────────────────────────────────────────────────────────────


class GuessPool:
    """
    Ordered, grow-only list of guesses.

    ``max_guesses`` caps the pool; forks past the cap are refused and the
    guess that wanted to fork carries on with its own choice.
    """

    def __init__(self, max_guesses: Optional[int] = None) -> None:
        self.guesses: List[Guess] = [Guess()]
        self.max_guesses = max_guesses
        self.refused = 0

    def __len__(self) -> int:
        return len(self.guesses)

    def live(self) -> List[Guess]:
        # Snapshot in reverse: siblings appended while deciding this character
        # already contain it and must not see it again.
        return self.guesses[::-1]

    def fork(self, guess: Guess) -> Optional[Guess]:
        if self.max_guesses is not None and len(self.guesses) >= self.max_guesses:
            self.refused += 1
            if _DEBUG:
                print(f"  ! fork refused, pool at max_guesses={self.max_guesses}")
            return None
        sibling = guess.branch()
        self.guesses.append(sibling)
        return sibling


class _Reparser:
    def __init__(
        self,
        text: str,
        brute_force: Optional[BruteForce],
        heuristic: Optional[Heuristic],
        hard: bool,
        max_guesses: Optional[int],
    ) -> None:
        self.text = text
        self.brute_force = brute_force
        self.heuristic = heuristic
        self.hard = hard
        self.pool = GuessPool(max_guesses)

    def run(self) -> List[Guess]:
        units = 0
        for i, (c, width) in enumerate(ScalarSequence(self.text)):
            following: Optional[str] = None
            for guess in self.pool.live():
                if guess.auto_fill:
                    guess.auto_fill -= 1
                    continue
                if c != "'":
                    guess.consume(c)
                    continue
                if following is None:
                    following = self.text[i + 1 :]
                self._decide(guess, i, units, following)
            units += width
        return self.pool.guesses

    def _branch(self, guess: Guess, action: Callable[[Guess], None]) -> None:
        sibling = self.pool.fork(guess)
        if sibling is not None:
            action(sibling)

    def _decide(self, guess: Guess, i: int, units: int, following: str) -> None:
        if self.brute_force is not None:
            pos = Position(units, i, self.text[:i], following, guess.in_string, guess.freeze())
            if self.brute_force(pos):
                self._branch(guess, _literal_absorbing_escape)
                guess.escape_pending = False
                guess.emit('"')
                guess.in_string = not guess.in_string
                return

        if self.heuristic is not None:
            pos = Position(units, i, self.text[:i], following, guess.in_string, guess)
            result = self.heuristic(pos)
            if result is None:
                return
            if isinstance(result, Resolution):
                guess.escape_pending = False
                guess.emit(result.quote)
                guess.in_string = result.in_string
                return
            if result is not DEFER:
                raise TypeError(
                    f"heuristic must return None, Resolution or DEFER, got {result!r}"
                )

        self._default(guess, i, following)

    def _default(self, guess: Guess, i: int, following: str) -> None:
        if not guess.in_string:
            guess.open_string()
            return

        if guess.escape_pending:
            guess.escape_pending = False
            guess.keep_literal()
            return

        ctx = _terminator_context(guess)
        closes_here = _delimiter_following(ctx, following)
        span = _next_valid_quote(ctx, following)

        if closes_here and span is not None:
            self._branch(guess, Guess.close_string)
            if self.hard:
                self._branch(guess, Guess.keep_literal)
            guess.adopt_span(i + 1, span)
        elif closes_here:
            if self.hard:
                self._branch(guess, Guess.keep_literal)
            guess.close_string()
        elif span is not None:
            if self.hard:
                self._branch(guess, Guess.close_string)
            guess.adopt_span(i + 1, span)
        elif "'" not in following:
            # Last quote in the input: nothing later could close this string.
            if self.hard:
                self._branch(guess, Guess.keep_literal)
            guess.close_string()
        else:
            if _DEBUG:
                print(f"  - no close point for quote at character {i}, kept literal")
            if self.hard:
                self._branch(guess, Guess.close_string)
            guess.keep_literal()


def _literal_absorbing_escape(guess: Guess) -> None:
    guess.escape_pending = False
    guess.keep_literal()


# ─────────────────────────────────────────────────────────────────────────────
# Validation / selection
# ─────────────────────────────────────────────────────────────────────────────


class Outcome(Enum):
    FAILED = "failed"
    DEFINITIVE = "definitive"
    AMBIGUOUS = "ambiguous"


class AmbiguousReparseError(ValueError):
    """More than one guess produced valid JSON."""

    def __init__(self, candidates: List[str]) -> None:
        self.candidates = candidates
        super().__init__(
            f"Input is ambiguous: {len(candidates)} valid repairs. "
            "Pass a stricter heuristic or brute_force predicate to pick one."
        )


def _strict_loads(text: str) -> Any:
    def _bad_const(x: str) -> Any:
        raise ValueError(f"Invalid JSON constant: {x}")

    # json.loads is used here because it supports parse_constant for strictness.
    return json.loads(text, parse_constant=_bad_const)


def _try_parse(text: str) -> Any:
    try:
        return _strict_loads(text)
    except (ValueError, RecursionError):
        return _SENTINEL


def select(guesses: List[Guess]) -> List[str]:
    """Texts of the guesses that parse as strict JSON, in creation order, deduplicated."""
    results: List[str] = []
    seen = set()
    for i, guess in enumerate(guesses):
        text = guess.text
        if _DEBUG:
            print(f"  guess #{i}: {_preview(text)}")
        if _try_parse(text) is _SENTINEL:
            if _DEBUG:
                print("    - invalid JSON")
            continue
        if text in seen:
            continue
        seen.add(text)
        results.append(text)
    return results


def classify(results: List[str]) -> Outcome:
    if not results:
        return Outcome.FAILED
    if len(results) == 1:
        return Outcome.DEFINITIVE
    return Outcome.AMBIGUOUS


def _preview(text: str) -> str:
    if len(text) > _PREVIEW_LIMIT:
        return text[:_PREVIEW_LIMIT] + "…"
    return text


# -----------------------------
# Public API
# -----------------------------


def scan(
    text: str,
    brute_force: Optional[BruteForce] = None,
    heuristic: Optional[Heuristic] = None,
    hard: bool = False,
    max_guesses: Optional[int] = None,
) -> List[Guess]:
    """Run the single forward pass and return every guess, valid or not."""
    if not isinstance(text, str):
        raise TypeError(f"expected str, got {type(text).__name__}")
    if max_guesses is not None and max_guesses < 1:
        raise ValueError("max_guesses must be at least 1")
    return _Reparser(text, brute_force, heuristic, hard, max_guesses).run()


def reparse(
    text: str,
    brute_force: Optional[BruteForce] = None,
    heuristic: Optional[Heuristic] = None,
    hard: bool = False,
    max_guesses: Optional[int] = None,
) -> List[str]:
    """
    Repair single-quoted JSON.

    Parameters
    ----------
    text        : The malformed JSON string.
    brute_force : Optional predicate; True at an apostrophe tries both readings.
    heuristic   : Optional callback resolving apostrophes (see module docstring).
    hard        : Fork the alternatives the built-in heuristics reject too.
    max_guesses : Optional cap on the number of guesses kept alive.

    Returns
    -------
    Every distinct valid repair, in the order the guesses were created.
    Guesses that end in the same text are reported once, so the length of
    the list counts distinct repairs, not branches (use ``scan`` for those).
    An empty list means no repair was found.
    """
    results = select(scan(text, brute_force, heuristic, hard, max_guesses))
    if _DEBUG:
        outcome = classify(results)
        if outcome is Outcome.DEFINITIVE:
            print(f"  + definitive answer: {_preview(results[0])}")
        elif outcome is Outcome.AMBIGUOUS:
            print(
                f"  ~ {len(results)} valid repairs; "
                "try a heuristic or brute_force predicate to narrow them"
            )
        else:
            print("  - no valid repair; try a heuristic or brute_force predicate")
    return results


def reparse_json(text: str, return_dict: bool = False, **options: Any) -> Any:
    """
    Repair single-quoted JSON and insist on exactly one answer.

    Returns the repaired JSON pretty-printed (or the parsed object if
    ``return_dict=True``).  ``options`` are passed to ``reparse``.

    Raises
    ------
    ValueError            : If no guess produced valid JSON.
    AmbiguousReparseError : If more than one did.
    """
    results = reparse(text, **options)
    outcome = classify(results)
    if outcome is Outcome.FAILED:
        raise ValueError(f"Could not reparse JSON.\nInput:\n{_preview(text)}")
    if outcome is Outcome.AMBIGUOUS:
        raise AmbiguousReparseError(results)
    parsed = _strict_loads(results[0])
    return parsed if return_dict else _pretty_dumps(parsed)


def _pretty_dumps(obj: Any) -> str:
    if _USE_ORJSON:
        return orjson.dumps(obj, option=orjson.OPT_INDENT_2).decode("utf-8")  # type: ignore
    return json.dumps(obj, ensure_ascii=False, indent=2)


# =============================
# Tests
# =============================


def _run_tests() -> None:
    RED = "\033[91m"
    GREEN = "\033[92m"
    CYAN = "\033[96m"
    BOLD = "\033[1m"
    DIM = "\033[2m"
    RESET = "\033[0m"

    # (id, description, input, options, expected repair that must be present)
    tests: List[Tuple[str, str, str, dict, Optional[str]]] = [
        ("CORE-01", "Apostrophe inside a value", "['Bob O'Rielly']", {}, "[\"Bob O'Rielly\"]"),
        ("CORE-02", "Plain single quotes", "['a', 'b']", {}, '["a", "b"]'),
        ("CORE-03", "Empty strings", "['']", {}, '[""]'),
        ("CORE-04", "Object keys and values", "{'a': 'b', 'c': 1}", {}, '{"a": "b", "c": 1}'),
        ("CORE-05", "Top-level string", "'it'", {}, '"it"'),
        ("CORE-06", "Already valid", '{"a": [1, 2]}', {}, '{"a": [1, 2]}'),
        ("CORE-07", "Unbalanced", "{'a'}", {}, None),
        (
            "HARD-01",
            "Escaped double quote in value",
            "[{'fullName':'Bob O'Rielly','height':'13',5\\\"'}]",
            {"hard": True},
            "[{\"fullName\":\"Bob O'Rielly\",\"height\":\"13',5\\\"\"}]",
        ),
        (
            "BF-01",
            "Brute force on every quote",
            "['a']",
            {"brute_force": lambda pos: True},
            '["a"]',
        ),
    ]

    print(f"\n{BOLD}{'='*74}{RESET}")
    print(f"{BOLD}  json_reparse self-check -- {len(tests)} cases{RESET}")
    print(f"{BOLD}{'='*74}{RESET}\n")

    passed = failed = 0
    fail_list: List[str] = []

    for id_, desc, broken, opts, expected in tests:
        print(f"{BOLD}{CYAN}{id_}{RESET}: {desc}")
        print(f"  {DIM}Input: {broken!r}{RESET}")
        results = reparse(broken, **opts)
        ok = (expected in results) if expected is not None else not results
        if ok:
            print(f"  {GREEN}+ PASS{RESET}  {DIM}{classify(results).value}{RESET}")
            for r in results:
                print(f"  {GREEN}-> {r}{RESET}")
            passed += 1
        else:
            print(f"  {RED}- FAIL -- got {results!r}{RESET}")
            failed += 1
            fail_list.append(f"{id_}: {desc}")
        print()

    c = GREEN if failed == 0 else RED
    print(f"{'-'*74}{RESET}")
    print(
        f"  {BOLD}TOTAL:{RESET}  {GREEN}{passed} passed{RESET} "
        f" {RED}{failed} failed{RESET}  / {passed+failed}   {c}{RESET}"
    )
    print(f"{BOLD}{'='*74}{RESET}\n")

    if fail_list:
        print(f"{BOLD}{RED}Failed tests:{RESET}")
        for d in fail_list:
            print(f"  {RED}- {d}{RESET}")


if __name__ == "__main__":
    _run_tests()
