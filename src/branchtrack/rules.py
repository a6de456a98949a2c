"""Branch propagation rules.

A repository publishes changes through a chain of integration branches. The
chain is described per repository by rules mapping a branch name pattern to
one or more target templates, e.g.::

    ^staging-next-([\\d.]+)$: [release-$1]
    ^master$: [nixpkgs-unstable, nixos-unstable-small]

Templates refer to capture groups of the pattern with ``$1``, ``${1}``,
``$name`` or ``${name}``; ``$$`` is a literal dollar sign. A matching rule
replaces the matched part of the branch name with every one of its expanded
templates.
"""

from dataclasses import dataclass, field
import logging
import re
from typing import Dict, List, Mapping, NamedTuple, Sequence, Tuple, Union

from branchtrack.github.model import RepositoryId
from branchtrack.model import InvalidConfig, TrackerConfig

logger = logging.getLogger("branchtrack")

# all_branches stops expanding after this many levels
MAX_DEPTH = 32

_TEMPLATE_TOKEN = re.compile(
    r"\$(?:(?P<dollar>\$)|\{(?P<braced>[_0-9A-Za-z]+)\}|(?P<bare>[_0-9A-Za-z]+))"
)
_END_OF_STRING = re.compile(r"(?<!\\)((?:\\\\)*)\\z")


class GroupRef(NamedTuple):
    """Reference to a capture group, by number or by name."""

    key: Union[int, str]


TemplatePart = Union[str, GroupRef]


def _compile_pattern(pattern: str) -> "re.Pattern[str]":
    # \z is the end-of-string anchor of most other regex dialects
    return re.compile(_END_OF_STRING.sub(r"\1\\Z", pattern))


def _parse_template(template: str, pattern: "re.Pattern[str]") -> Tuple[TemplatePart, ...]:
    parts: List[TemplatePart] = []
    literal = ""
    pos = 0
    for m in _TEMPLATE_TOKEN.finditer(template):
        literal += template[pos : m.start()]
        pos = m.end()
        if m.group("dollar"):
            literal += "$"
            continue
        name = m.group("braced") or m.group("bare")
        ref: Union[int, str] = int(name) if name.isdigit() else name
        if isinstance(ref, int) and ref > pattern.groups:
            raise ValueError(
                f"template {template!r} refers to group {ref}, "
                f"but {pattern.pattern!r} only has {pattern.groups}"
            )
        if isinstance(ref, str) and ref not in pattern.groupindex:
            raise ValueError(
                f"template {template!r} refers to unknown group {ref!r} "
                f"of {pattern.pattern!r}"
            )
        if literal:
            parts.append(literal)
            literal = ""
        parts.append(GroupRef(ref))
    literal += template[pos:]
    if literal:
        parts.append(literal)
    return tuple(parts)


@dataclass(frozen=True)
class PropagationRule:
    pattern: "re.Pattern[str]"
    targets: Tuple[str, ...]
    _parts: Tuple[Tuple[TemplatePart, ...], ...] = field(
        init=False, repr=False, compare=False
    )

    def __post_init__(self):
        object.__setattr__(
            self,
            "_parts",
            tuple(_parse_template(t, self.pattern) for t in self.targets),
        )

    @classmethod
    def compile(cls, pattern: str, targets: Sequence[str]) -> "PropagationRule":
        return cls(_compile_pattern(pattern), tuple(targets))

    def matches(self, branch: str) -> bool:
        return self.pattern.search(branch) is not None

    def apply(self, branch: str) -> List[str]:
        if not self.matches(branch):
            return []

        def expand(parts: Tuple[TemplatePart, ...]):
            def repl(m: "re.Match[str]") -> str:
                return "".join(
                    (m.group(p.key) or "") if isinstance(p, GroupRef) else p
                    for p in parts
                )

            return repl

        return [self.pattern.sub(expand(parts), branch, count=1) for parts in self._parts]


class PropagationRuleSet:
    _rules: Dict[RepositoryId, Tuple[PropagationRule, ...]]

    def __init__(self, rules: Mapping[RepositoryId, Sequence[PropagationRule]]):
        self._rules = {repo: tuple(items) for repo, items in rules.items()}

    @classmethod
    def from_targets(
        cls, targets: Mapping[RepositoryId, Mapping[str, Sequence[str]]]
    ) -> "PropagationRuleSet":
        rules: Dict[RepositoryId, List[PropagationRule]] = {}
        for repository, mapping in targets.items():
            rules[repository] = []
            for pattern, templates in mapping.items():
                try:
                    rules[repository].append(PropagationRule.compile(pattern, templates))
                except (re.error, ValueError) as e:
                    raise InvalidConfig(
                        f"Invalid propagation rule {pattern!r} for {repository}: {e}"
                    ) from e
            logger.debug("Compiled %d rules for %s", len(rules[repository]), repository)
        return cls(rules)

    @classmethod
    def from_config(cls, config: TrackerConfig) -> "PropagationRuleSet":
        return cls.from_targets(config.rule_targets())

    @property
    def repositories(self) -> List[RepositoryId]:
        return list(self._rules)

    def rules_for(self, repository: RepositoryId) -> Tuple[PropagationRule, ...]:
        return self._rules.get(repository, ())

    def next_branches(self, repository: RepositoryId, branch: str) -> List[str]:
        return [
            target
            for rule in self.rules_for(repository)
            for target in rule.apply(branch)
        ]

    def all_branches(self, repository: RepositoryId, branch: str) -> List[str]:
        # no de-duplication: a branch reachable along two paths is listed twice
        branches = [branch]
        frontier = [branch]
        depth = 0
        while frontier:
            if depth == MAX_DEPTH:
                logger.warning(
                    "Propagation rules of %s still expand %s after %d levels, "
                    "the rules probably contain a cycle",
                    repository,
                    frontier,
                    depth,
                )
                break
            frontier = [
                nb for b in frontier for nb in self.next_branches(repository, b)
            ]
            branches.extend(frontier)
            depth += 1
        return branches
