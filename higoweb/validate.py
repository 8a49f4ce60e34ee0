"""Rule-based field validation with custom tags that raise coded errors."""

from __future__ import annotations

import dataclasses
import re
import threading
from dataclasses import dataclass
from typing import Any, Callable, Optional

from .result import ErrorResult
from .result import receiver as _receiver


@dataclass
class FieldLevel:
    """What a validation function sees: the value and the rule's parameter."""

    field: Any
    field_name: str = ""
    param: str = ""
    parent: Any = None


ValidationFunc = Callable[[FieldLevel], bool]


class FieldError(ValueError):
    """A value failed one validation tag."""

    def __init__(self, tag: str, value: Any, field_name: str = "") -> None:
        name = field_name or "value"
        super().__init__(f"validation for {name!r} failed on the {tag!r} tag")
        self.tag = tag
        self.value = value
        self.field_name = field_name


def _is_code(obj: Any) -> bool:
    return obj is not None and not isinstance(obj, type) and hasattr(obj, "message")


def _code_message(code: Any) -> str:
    message = code.message
    return message() if callable(message) else message


def _is_custom(obj: Any) -> bool:
    return callable(obj) and not _is_code(obj)


class ValidateError(Exception):
    """A validation failure carrying an error code and its message."""

    def __init__(self, code: Any) -> None:
        self.code_obj = code
        try:
            self.code = int(code)
        except (TypeError, ValueError):
            self.code = code
        self.message = _code_message(code)
        super().__init__(self.message)


def _has_value(value: Any) -> bool:
    if value is None:
        return False
    if isinstance(value, (str, bytes, int, float, bool)):
        return bool(value)
    return True


def _size(value: Any) -> float:
    if isinstance(value, (str, bytes, list, tuple, dict, set, frozenset)):
        return len(value)
    if isinstance(value, (int, float)):
        return value
    raise TypeError(f"cannot measure a {type(value).__name__}")


def _eq(fl: FieldLevel) -> bool:
    if isinstance(fl.field, str):
        return fl.field == fl.param
    return _size(fl.field) == float(fl.param)


_NUMERIC = re.compile(r"[-+]?\d+(\.\d+)?")

_BUILTINS: dict[str, ValidationFunc] = {
    "required": lambda fl: _has_value(fl.field),
    "min": lambda fl: _size(fl.field) >= float(fl.param),
    "max": lambda fl: _size(fl.field) <= float(fl.param),
    "len": lambda fl: _size(fl.field) == float(fl.param),
    "eq": _eq,
    "ne": lambda fl: not _eq(fl),
    "gt": lambda fl: _size(fl.field) > float(fl.param),
    "gte": lambda fl: _size(fl.field) >= float(fl.param),
    "lt": lambda fl: _size(fl.field) < float(fl.param),
    "lte": lambda fl: _size(fl.field) <= float(fl.param),
    "oneof": lambda fl: str(fl.field) in fl.param.split(),
    "numeric": lambda fl: _NUMERIC.fullmatch(str(fl.field)) is not None,
}

_RESTRICTED = set(",=|")


class Validator:
    """Checks values against comma-separated tag rules such as ``required,min=4``."""

    def __init__(self) -> None:
        self._funcs: dict[str, ValidationFunc] = dict(_BUILTINS)
        self._guard = threading.Lock()

    def register_validation(self, tag: str, fn: ValidationFunc) -> None:
        if not tag:
            raise ValueError("function key cannot be empty")
        if _RESTRICTED & set(tag):
            raise ValueError(f"tag {tag!r} contains a restricted character")
        if not callable(fn):
            raise TypeError("function cannot be empty")
        with self._guard:
            self._funcs[tag] = fn

    def _check(self, value: Any, rules: str, field_name: str = "", parent: Any = None) -> None:
        for spec in rules.split(","):
            spec = spec.strip()
            if not spec:
                continue
            tag, _, param = spec.partition("=")
            if tag == "omitempty":
                if not _has_value(value):
                    return
                continue
            with self._guard:
                fn = self._funcs.get(tag)
            if fn is None:
                raise LookupError(f"undefined validation function {tag!r}")
            if not fn(FieldLevel(value, field_name, param, parent)):
                raise FieldError(tag, value, field_name)

    def var(self, value: Any, rules: str) -> None:
        """Raise FieldError if ``value`` breaks one of ``rules``."""
        self._check(value, rules)

    def struct(self, obj: Any) -> None:
        """Check every dataclass field against its ``binding`` metadata, recursively."""
        if not dataclasses.is_dataclass(obj) or isinstance(obj, type):
            raise TypeError(f"{obj!r} is not a dataclass instance")
        for f in dataclasses.fields(obj):
            value = getattr(obj, f.name)
            self._check(value, f.metadata.get("binding", ""), f.name, obj)
            if dataclasses.is_dataclass(value) and not isinstance(value, type):
                self.struct(value)


default_validator = Validator()
verify_container: dict[str, "Verify"] = {}


@dataclass
class VerifyRule:
    """A rule string paired with an error code or a custom check function."""

    rule: str
    code: Any


def rule(rule: str, code: Any) -> VerifyRule:
    """Pair a rule with an error code or a ``fn(field_level) -> (ok, code)``."""
    if not _is_code(code) and not callable(code):
        raise TypeError("does not support verify rule")
    return VerifyRule(rule, code)


def rule_func(rule: str, fn: Callable[[FieldLevel], tuple]) -> VerifyRule:
    return VerifyRule(rule, fn)


class RuleGroup:
    """All rules of one custom tag, checked together."""

    def __init__(self, tag: str, *rules: VerifyRule, validator: Optional[Validator] = None) -> None:
        self.tag = tag
        self.rules = list(rules)
        self.validator = validator or default_validator
        self.fl: Optional[FieldLevel] = None
        self._messages = {r.rule.split("=")[0]: r.code for r in self.rules}
        self.rule = ",".join(r.rule for r in self.rules)

    def to_func(self) -> ValidationFunc:
        """Return a validation function that raises ValidateError on failure."""

        def check(fl: FieldLevel) -> bool:
            self.fl = fl
            for r in self.rules:
                if _is_custom(r.code):
                    ok, code = r.code(fl)
                    if not ok:
                        self._valid(r.rule, fl, code)
                else:
                    self._valid(r.rule, fl, fl.field)
            return True

        return check

    def _valid(self, rule: str, fl: FieldLevel, value: Any) -> None:
        if _is_code(value):
            raise ValidateError(value)
        try:
            self.validator.var(value, self.rule)
            return
        except FieldError:
            pass
        msg = self._messages.get(rule.split("=")[0])
        if _is_code(msg):
            raise ValidateError(msg)
        if callable(msg):
            ok, result = msg(fl)
            if not ok:
                self._valid(rule, fl, result)
            return
        raise RuntimeError("validator error")

    def throw(self, rule: str) -> None:
        """Raise the error mapped to ``rule``, running its check function if any."""
        msg = self._messages.get(rule.split("=")[0])
        if _is_code(msg):
            raise ValidateError(msg)
        if callable(msg):
            ok, result = msg(self.fl)
            if not ok:
                self._valid(rule, self.fl, result)


class Verify:
    """A set of custom tags and the object they are checked against."""

    def __init__(self, validator: Optional[Validator] = None) -> None:
        self.validator = validator or default_validator
        self.verifier_struct: Any = None
        self.verifier: Any = None
        self.verify_rules: dict[str, RuleGroup] = {}

    def use(self, validate: Any, *validates: Any) -> "Verify":
        """Merge in the tags of other validatable objects."""
        for item in (validate, *validates):
            self.verify_rules.update(item.register_validator().verify_rules)
        return self

    def tag(self, tag: str, *rules: VerifyRule) -> "Verify":
        if tag and rules:
            self.verify_rules[tag] = RuleGroup(tag, *rules, validator=self.validator)
        return self

    def struct(self) -> ErrorResult:
        try:
            self.validator.struct(self.verifier_struct)
        except FieldError as error:
            return ErrorResult(None, error)
        return ErrorResult(None, None)

    def unwrap(self) -> Any:
        return self.struct().unwrap()

    def receiver(self, *values: Any) -> ErrorResult:
        return _receiver(*values)

    def multi_bind(self, *errors: Any) -> ErrorResult:
        """Combine several bind outcomes, keeping the first error."""
        for error in errors:
            if isinstance(error, BaseException):
                return ErrorResult(None, error)
        return ErrorResult(None, None)


def verifier() -> Verify:
    return Verify()


def register_validator(validate: Any) -> Verify:
    """Create a Verify for ``validate`` and record it by type name."""
    verify = Verify()
    verify.verifier = validate
    cls = type(validate)
    verify_container[f"{cls.__module__}.{cls.__qualname__}"] = verify
    return verify


def register_validation(tag: str, fn: ValidationFunc) -> None:
    """Register a custom tag on the shared validator."""
    try:
        default_validator.register_validation(tag, fn)
    except (ValueError, TypeError) as error:
        raise RuntimeError(f"register validator {tag} error, msg: {error}") from error


def validate(validate: Any) -> Verify:
    """Register the object's tags and prepare it for checking."""
    verify = validate.register_validator()
    verify.verifier = validate
    for tag, group in verify.verify_rules.items():
        register_validation(tag, group.to_func())
    verify.verifier_struct = validate
    return verify