from __future__ import annotations

from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Callable, Dict, Iterable, Mapping, Optional, Tuple

from common.config import TagConfig, yaml_config
from common.errors import ConfigError
from common.logger import get_logger

log = get_logger(__name__)

Validator = Callable[[str], bool]


def non_negative_int(value: str) -> bool:
    v = value.strip()
    return v.isascii() and v.isdigit()


def non_empty(value: str) -> bool:
    return bool(value.strip())


VALIDATORS: Mapping[str, Validator] = MappingProxyType(
    {
        "non_negative_int": non_negative_int,
        "non_empty": non_empty,
    }
)


@dataclass(frozen=True)
class TagSchema:
    name: str
    allowed_attributes: frozenset
    required_attributes: frozenset = frozenset()
    validators: Mapping[str, Validator] = field(default_factory=dict)


@dataclass(frozen=True)
class ValidationResult:
    ok: bool
    attributes: Dict[str, str]
    reason: Optional[str] = None


class SchemaRegistry:
    """
    Immutable whitelist of component tags.

    ``register`` returns a new registry, so one configured value can be shared
    by any number of parsers without them affecting each other.
    """

    def __init__(self, schemas: Iterable[TagSchema] = ()):
        self._schemas: Mapping[str, TagSchema] = MappingProxyType(
            {s.name: s for s in schemas}
        )

    def register(
        self,
        name: str,
        allowed_attributes: Iterable[str],
        required_attributes: Iterable[str] = (),
        validators: Optional[Mapping[str, Validator]] = None,
    ) -> "SchemaRegistry":
        allowed = frozenset(allowed_attributes)
        required = frozenset(required_attributes)
        checks = dict(validators or {})
        unknown = (required | set(checks)) - allowed
        if unknown:
            raise ConfigError(
                f"Tag {name!r}: attributes {sorted(unknown)} are not in allowed_attributes"
            )
        schema = TagSchema(
            name=name,
            allowed_attributes=allowed,
            required_attributes=required,
            validators=MappingProxyType(checks),
        )
        return SchemaRegistry([*self._schemas.values(), schema])

    @classmethod
    def from_config(cls, tags: Iterable[TagConfig]) -> "SchemaRegistry":
        registry = cls()
        for t in tags:
            checks: Dict[str, Validator] = {}
            for attr, validator_name in t.validators.items():
                if validator_name not in VALIDATORS:
                    raise ConfigError(
                        f"Tag {t.name!r}: unknown validator {validator_name!r} for {attr!r}"
                    )
                checks[attr] = VALIDATORS[validator_name]
            registry = registry.register(
                t.name, t.allowed_attributes, t.required_attributes, checks
            )
        log.debug("Built schema registry with tags: %s", ", ".join(registry.names))
        return registry

    @property
    def names(self) -> Tuple[str, ...]:
        return tuple(self._schemas)

    def __contains__(self, name: object) -> bool:
        return name in self._schemas

    def get(self, name: str) -> Optional[TagSchema]:
        return self._schemas.get(name)

    def validate(self, name: str, attributes: Mapping[str, str]) -> ValidationResult:
        """
        Sanitize a tag instance against its schema.
        Unknown attributes are dropped; a failed required/validator check rejects the tag.
        """
        schema = self._schemas.get(name)
        if schema is None:
            return ValidationResult(ok=False, attributes={}, reason="unknown-tag")

        clean = {k: v for k, v in attributes.items() if k in schema.allowed_attributes}
        for attr in sorted(schema.required_attributes):
            if attr not in clean:
                return ValidationResult(
                    ok=False, attributes=clean, reason=f"missing-attribute:{attr}"
                )
        for attr, check in schema.validators.items():
            if attr in clean and not check(clean[attr]):
                return ValidationResult(
                    ok=False, attributes=clean, reason=f"invalid-attribute:{attr}"
                )
        return ValidationResult(ok=True, attributes=clean)


def default_registry() -> SchemaRegistry:
    return SchemaRegistry.from_config(yaml_config.tags)
