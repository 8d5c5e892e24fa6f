"""
chaosctl Rule Lists
===================
Ordered, identity-stable editing of status-injection and mock-response
rules. Each operation builds a new list and hands it to the owner, so a
rule object is never mutated in place and list order only changes by
appending or removing.
"""

from __future__ import annotations

from dataclasses import replace
from typing import Any, Callable, Generic, Iterator, List, Optional, Type

from chaosctl.core.model import R, new_rule_id

# Shorthand field names accepted from the command line.
_FIELD_ALIASES = {
    "path": "path_pattern",
    "pattern": "path_pattern",
    "code": "status_code",
    "status": "status_code",
    "rate": "error_rate",
    "enabled": "active",
}


class RuleListEditor(Generic[R]):
    """CRUD over one rule list owned by someone else.

    Args:
        rule_cls: ``StatusRule`` or ``MockRule``.
        get_rules: Returns the current list.
        set_rules: Receives the replacement list after every change.
    """

    def __init__(
        self,
        rule_cls: Type[R],
        get_rules: Callable[[], List[R]],
        set_rules: Callable[[List[R]], None],
    ):
        self.rule_cls = rule_cls
        self._get_rules = get_rules
        self._set_rules = set_rules

    # ── Access ───────────────────────────────────────────────────────────

    @property
    def rules(self) -> List[R]:
        return list(self._get_rules())

    def __iter__(self) -> Iterator[R]:
        return iter(self.rules)

    def __len__(self) -> int:
        return len(self._get_rules())

    def get(self, rule_id: str) -> Optional[R]:
        for rule in self._get_rules():
            if rule.id == rule_id:
                return rule
        return None

    def find(self, ref: str) -> Optional[R]:
        """Find a rule by id, or by 1-based position in the list."""
        ref = str(ref).strip().lstrip("#")
        rule = self.get(ref)
        if rule is not None:
            return rule
        rules = self._get_rules()
        if ref.isdigit() and 1 <= int(ref) <= len(rules):
            return rules[int(ref) - 1]
        return None

    def resolve_field(self, name: str) -> str:
        wanted = str(name).strip()
        candidates = {wanted.lower(), _FIELD_ALIASES.get(wanted.lower(), "")}
        for attr, key in self.rule_cls.WIRE_KEYS.items():
            if attr in candidates or key.lower() in candidates:
                return attr
        raise KeyError(f"Unknown {self.rule_cls.__name__} field: {name}")

    # ── Mutations ────────────────────────────────────────────────────────

    def add(self) -> R:
        """Append a rule with a fresh id and type defaults."""
        rules = self._get_rules()
        existing = {r.id for r in rules}
        rule = self.rule_cls.create()
        while rule.id in existing:
            rule = replace(rule, id=new_rule_id())
        self._set_rules([*rules, rule])
        return rule

    def update(self, rule_id: str, field: str, value: Any) -> Optional[R]:
        """Replace one field on one rule. Unknown ids are a no-op."""
        attr = self.resolve_field(field)
        if attr == "id":
            raise ValueError("Rule ids cannot be changed")
        rules = self._get_rules()
        for i, rule in enumerate(rules):
            if rule.id == rule_id:
                updated = replace(rule, **{attr: self.rule_cls.coerce(attr, value)})
                new_rules = list(rules)
                new_rules[i] = updated
                self._set_rules(new_rules)
                return updated
        return None

    def remove(self, rule_id: str) -> bool:
        """Delete one rule by id. Returns False (and changes nothing) if absent."""
        rules = self._get_rules()
        new_rules = [r for r in rules if r.id != rule_id]
        if len(new_rules) == len(rules):
            return False
        self._set_rules(new_rules)
        return True
