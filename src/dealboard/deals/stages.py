"""Pipeline stage registry -- the fixed, ordered sequence of deal stages.

Stages are defined once at import time and never change at runtime. Their
order defines both the kanban column order and the single-step adjacency
used for forward/backward navigation. The last stage (WON) is terminal:
deals in it count toward won value instead of pipeline value and are never
considered stale.
"""

from __future__ import annotations

from pydantic import BaseModel, ConfigDict


class UnknownStageError(ValueError):
    """Raised when a stage id does not resolve to a registered stage."""

    def __init__(self, stage_id: str) -> None:
        self.stage_id = stage_id
        super().__init__(
            f"Unknown stage: {stage_id!r}. "
            f"Known stages: {', '.join(s.id for s in STAGES)}"
        )


class Stage(BaseModel):
    """One named step in the pipeline."""

    model_config = ConfigDict(frozen=True)

    id: str
    name: str
    position: int


# ── Registry ────────────────────────────────────────────────────────────────

STAGES: tuple[Stage, ...] = tuple(
    sorted(
        (
            Stage(id="suspect", name="Suspect", position=1),
            Stage(id="prospect", name="Prospect", position=2),
            Stage(id="meeting", name="Meeting", position=3),
            Stage(id="proposal", name="Proposal", position=4),
            Stage(id="next_round", name="Next round", position=5),
            Stage(id="decision", name="Decision making", position=6),
            Stage(id="won", name="Won", position=7),
        ),
        key=lambda s: s.position,
    )
)

INITIAL_STAGE_ID: str = STAGES[0].id
WON_STAGE_ID: str = "won"

_BY_ID: dict[str, Stage] = {s.id: s for s in STAGES}
_INDEX: dict[str, int] = {s.id: i for i, s in enumerate(STAGES)}

if len(_BY_ID) != len(STAGES):
    raise RuntimeError("Stage ids must be unique")


# ── Lookup ──────────────────────────────────────────────────────────────────


def is_known_stage(stage_id: str) -> bool:
    return stage_id in _BY_ID


def get_stage(stage_id: str) -> Stage:
    """Return the stage for an id.

    Raises:
        UnknownStageError: If the id is not registered.
    """
    try:
        return _BY_ID[stage_id]
    except KeyError:
        raise UnknownStageError(stage_id) from None


def validate_stage_id(stage_id: str) -> str:
    """Return stage_id unchanged if registered, raise UnknownStageError otherwise."""
    get_stage(stage_id)
    return stage_id


def stage_name(stage_id: str) -> str:
    """Display name for a stage id, falling back to the id itself."""
    stage = _BY_ID.get(stage_id)
    return stage.name if stage is not None else stage_id


def non_won_stages() -> tuple[Stage, ...]:
    return tuple(s for s in STAGES if s.id != WON_STAGE_ID)


# ── Adjacency ───────────────────────────────────────────────────────────────


def next_stage(stage_id: str) -> Stage | None:
    """The stage after stage_id, or None at the end of the pipeline."""
    idx = _INDEX[get_stage(stage_id).id]
    if idx >= len(STAGES) - 1:
        return None
    return STAGES[idx + 1]


def previous_stage(stage_id: str) -> Stage | None:
    """The stage before stage_id, or None at the start of the pipeline."""
    idx = _INDEX[get_stage(stage_id).id]
    if idx == 0:
        return None
    return STAGES[idx - 1]
