"""Control-flow commands: filter, drop_record, if, fork, try_rules.

Branching semantics:

- if: evaluates a condition and routes the record through the ``then`` or
  ``else`` sub-chain. Both sub-chains rejoin the main chain at this
  command's child.
- fork: runs every branch, in configured order, on its own copy of the
  record. A branch returning False never stops later branches. With
  ``require_all`` the fork's verdict is the AND of the branch results and a
  False verdict stops the main chain; otherwise the verdict is True. The
  original record then continues to this command's child.
- try_rules: tries each rule sub-chain on a copy of the record; the first
  rule that returns True wins and later rules are skipped. Rules rejoin the
  main chain at this command's child.
"""

from typing import Any

import structlog
from pydantic import Field, field_validator

from ingestline.contracts.errors import ConditionEvaluationError, NoRuleMatchedError
from ingestline.contracts.record import Record
from ingestline.engine.expression_parser import (
    ExpressionEvaluationError,
    ExpressionParser,
    ExpressionSecurityError,
)
from ingestline.plugins.base import BaseCommand, Command, EndOfChain, close_chain, describe_chain
from ingestline.plugins.config_base import CommandConfig
from ingestline.plugins.context import CommandContext

logger = structlog.get_logger(__name__)


def _evaluate_condition(parser: ExpressionParser, record: Record, path: str) -> bool:
    try:
        return bool(parser.evaluate(record))
    except (ExpressionEvaluationError, ExpressionSecurityError) as e:
        raise ConditionEvaluationError(f"{path}: condition {parser.expression!r} failed: {e}") from e


class FilterConfig(CommandConfig):
    """Configuration for filter.

    Example YAML:
        - filter:
            condition: "record.first('content_type', '').startswith('text/')"
    """

    condition: str = Field(..., min_length=1, description="Expression; records for which it is falsy are dropped")
    negate: bool = Field(default=False, description="Drop records for which the condition is truthy instead")


class Filter(BaseCommand):
    """Drop records that do not satisfy a condition."""

    name = "filter"
    config_class = FilterConfig

    def __init__(self, options: dict[str, Any] | None, context: CommandContext, child: Command, *, path: str) -> None:
        super().__init__(options, context, child, path=path)
        # Parse at build time - invalid expressions fail the task setup
        self._parser = ExpressionParser(self.config.condition)

    def process(self, record: Record) -> bool:
        matched = _evaluate_condition(self._parser, record, self.path)
        if matched == self.config.negate:
            logger.debug("Record filtered", command=self.path, condition=self.config.condition)
            return False
        return self.forward(record)


class DropRecord(BaseCommand):
    """Filter every record. Useful as the last step of a rule or branch."""

    name = "drop_record"

    def process(self, record: Record) -> bool:
        return False


class IfConfig(CommandConfig):
    model_config = {"extra": "forbid", "frozen": True, "populate_by_name": True}

    condition: str = Field(..., min_length=1)
    then: list[dict[str, Any]] = Field(default_factory=list)
    else_: list[dict[str, Any]] = Field(default_factory=list, alias="else")


class If(BaseCommand):
    """Route a record through one of two sub-chains.

    Example YAML:
        - if:
            condition: "'pdf' in record.get('tags')"
            then:
              - set_values: {values: {kind: document}}
            else:
              - set_values: {values: {kind: other}}
    """

    name = "if"
    config_class = IfConfig

    def __init__(self, options: dict[str, Any] | None, context: CommandContext, child: Command, *, path: str) -> None:
        super().__init__(options, context, child, path=path)
        self._parser = ExpressionParser(self.config.condition)
        self._then = context.builder.build(self.config.then, path=f"{path}.then", final_child=child)
        self._else = context.builder.build(self.config.else_, path=f"{path}.else", final_child=child)

    def process(self, record: Record) -> bool:
        if _evaluate_condition(self._parser, record, self.path):
            return self._then.process(record)
        return self._else.process(record)

    def describe_branches(self) -> dict[str, list[dict[str, Any]]]:
        return {
            "then": describe_chain(self._then, stop_at=self.child),
            "else": describe_chain(self._else, stop_at=self.child),
        }

    def close(self) -> None:
        close_chain(self._then, stop_at=self.child)
        close_chain(self._else, stop_at=self.child)


class ForkConfig(CommandConfig):
    branches: list[list[dict[str, Any]]] = Field(..., description="Sub-chains run on copies of the record")
    require_all: bool = Field(default=False, description="Verdict is the AND of branch results")

    @field_validator("branches")
    @classmethod
    def validate_branches_not_empty(cls, v: list[list[dict[str, Any]]]) -> list[list[dict[str, Any]]]:
        if not v:
            raise ValueError("fork requires at least one branch")
        return v


class Fork(BaseCommand):
    """Fan a record out to several independent branches.

    Example YAML:
        - fork:
            require_all: false
            branches:
              - [set_values: {values: {copy: a}}, load_documents: {}]
              - [set_values: {values: {copy: b}}, load_documents: {}]
    """

    name = "fork"
    config_class = ForkConfig

    def __init__(self, options: dict[str, Any] | None, context: CommandContext, child: Command, *, path: str) -> None:
        super().__init__(options, context, child, path=path)
        self._branches: list[Command] = [
            context.builder.build(branch, path=f"{path}.branches[{i}]", final_child=EndOfChain())
            for i, branch in enumerate(self.config.branches)
        ]

    def process(self, record: Record) -> bool:
        results = [branch.process(record.copy()) for branch in self._branches]
        if self.config.require_all and not all(results):
            return False
        return self.forward(record)

    def describe_branches(self) -> dict[str, list[dict[str, Any]]]:
        return {f"branches[{i}]": describe_chain(branch) for i, branch in enumerate(self._branches)}

    def close(self) -> None:
        for branch in self._branches:
            close_chain(branch)


class TryRulesConfig(CommandConfig):
    rules: list[list[dict[str, Any]]] = Field(..., description="Rule sub-chains, tried in order")
    throw_on_no_match: bool = Field(default=False, description="Raise NoRuleMatchedError instead of filtering")

    @field_validator("rules")
    @classmethod
    def validate_rules_not_empty(cls, v: list[list[dict[str, Any]]]) -> list[list[dict[str, Any]]]:
        if not v:
            raise ValueError("try_rules requires at least one rule")
        return v


class TryRules(BaseCommand):
    """Try rule sub-chains until one accepts the record.

    Each rule sees a fresh copy of the record, so a rule that fails halfway
    leaves no partial mutations behind for the next rule.
    """

    name = "try_rules"
    config_class = TryRulesConfig

    def __init__(self, options: dict[str, Any] | None, context: CommandContext, child: Command, *, path: str) -> None:
        super().__init__(options, context, child, path=path)
        self._rules: list[Command] = [
            context.builder.build(rule, path=f"{path}.rules[{i}]", final_child=child) for i, rule in enumerate(self.config.rules)
        ]

    def process(self, record: Record) -> bool:
        for index, rule in enumerate(self._rules):
            if rule.process(record.copy()):
                logger.debug("Rule matched", command=self.path, rule=index)
                return True
        if self.config.throw_on_no_match:
            raise NoRuleMatchedError(f"{self.path}: no rule matched record {record!r}")
        return False

    def describe_branches(self) -> dict[str, list[dict[str, Any]]]:
        return {f"rules[{i}]": describe_chain(rule, stop_at=self.child) for i, rule in enumerate(self._rules)}

    def close(self) -> None:
        for rule in self._rules:
            close_chain(rule, stop_at=self.child)
