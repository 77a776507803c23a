"""Rule Store: validated creation and cached lookup of moderation rules.

Every ingestion reads its organization's active rule set, so the set is held
in a short TTL cache and invalidated on every write to that organization's
rules.
"""

from __future__ import annotations

from typing import Any, Dict, List

from commguard.database.db_cache import DatabaseQueryCache
from commguard.database.db_connection import ConnectionManager
from commguard.datatypes.content_datatypes import ContentItem
from commguard.datatypes.rule_datatypes import (
    ModerationRule,
    RuleActions,
    RuleConditions,
    RuleType,
    parse_actions,
    parse_conditions,
    parse_rule_type,
)
from commguard.errors import ConfigurationError, NotFound
from commguard.repositories.rule_repo import ModerationRuleRepo
from commguard.util.logger import get_logger
from commguard.util.record_utils import new_id

logger = get_logger("rule_store")


def validate_severity(severity: Any) -> int:
    if isinstance(severity, bool) or not isinstance(severity, int):
        raise ConfigurationError(f"Severity must be an integer, got {severity!r}")
    if not 1 <= severity <= 5:
        raise ConfigurationError(f"Severity must be between 1 and 5, got {severity}")
    return severity


class RuleStore:
    """Holds the moderation rules of every organization."""

    def __init__(self, db: ConnectionManager, cache: DatabaseQueryCache | None = None) -> None:
        self._db = db
        self._cache = cache or DatabaseQueryCache(ttl_seconds=60)

    @staticmethod
    def _cache_key(organization_id: str) -> str:
        return f"rules:{organization_id}"

    async def create_rule(
        self,
        organization_id: str,
        name: str,
        rule_type: RuleType | str,
        conditions: Dict[str, Any] | RuleConditions,
        actions: Dict[str, Any] | RuleActions | None = None,
        severity: int = 1,
        *,
        community_id: str | None = None,
        description: str | None = None,
        created_by: str | None = None,
        is_active: bool = True,
    ) -> ModerationRule:
        """Validate and persist a new rule.

        Raises:
            ConfigurationError: If the name, type, conditions, actions or
                severity are invalid. Nothing is written in that case.
        """
        if not name or not name.strip():
            raise ConfigurationError("Rule name must not be empty")

        parsed_type = parse_rule_type(rule_type)
        rule = ModerationRule(
            id=new_id(),
            organization_id=organization_id,
            community_id=community_id,
            name=name.strip(),
            description=description,
            rule_type=parsed_type,
            conditions=parse_conditions(parsed_type, conditions),
            actions=parse_actions(actions),
            severity=validate_severity(severity),
            is_active=is_active,
            created_by=created_by,
        )

        async with self._db.transaction() as conn:
            await ModerationRuleRepo.insert(conn, rule)

        self._cache.invalidate(self._cache_key(organization_id))
        logger.info(
            "[RULE STORE] Created %s rule '%s' (%s) for organization %s",
            rule.rule_type,
            rule.name,
            rule.id,
            organization_id,
        )
        return rule

    async def active_rules(self, organization_id: str) -> List[ModerationRule]:
        """Every active rule of the organization, most severe first."""
        key = self._cache_key(organization_id)
        cached = self._cache.get(key)
        if cached is not None:
            return list(cached)

        async with self._db.read() as conn:
            rules = await ModerationRuleRepo.list_for_organization(conn, organization_id)
        self._cache.set(key, tuple(rules))
        return rules

    async def rules_for_item(self, item: ContentItem) -> List[ModerationRule]:
        """Active rules that apply to the item's community."""
        return [rule for rule in await self.active_rules(item.organization_id) if rule.applies_to(item.community_id)]

    async def list_rules(
        self,
        organization_id: str,
        community_id: str | None = None,
        *,
        active_only: bool = False,
    ) -> List[ModerationRule]:
        async with self._db.read() as conn:
            return await ModerationRuleRepo.list_for_organization(
                conn, organization_id, community_id, active_only=active_only
            )

    async def get_rule(self, rule_id: str) -> ModerationRule:
        async with self._db.read() as conn:
            rule = await ModerationRuleRepo.get(conn, rule_id)
        if rule is None:
            raise NotFound("moderation rule", rule_id)
        return rule

    async def set_rule_active(self, rule_id: str, is_active: bool) -> ModerationRule:
        """Enable or disable a rule.

        Raises:
            NotFound: If the rule does not exist.
        """
        async with self._db.transaction() as conn:
            if not await ModerationRuleRepo.set_active(conn, rule_id, is_active):
                raise NotFound("moderation rule", rule_id)
            rule = await ModerationRuleRepo.get(conn, rule_id)

        assert rule is not None
        self._cache.invalidate(self._cache_key(rule.organization_id))
        logger.info("[RULE STORE] Rule %s %s", rule_id, "enabled" if is_active else "disabled")
        return rule
