import math

from ..schemas import TimelineStep, StepIconCard

TITLE_MAX_CHARS = 50


def build_step_card(step: TimelineStep) -> StepIconCard:
    badges = []
    cues = []

    if step.concurrent_group:
        badges.append("parallel")
    if step.temperature_f:
        cues.append(f"{step.temperature_f}°F")
    if step.doneness_cue:
        cues.append(step.doneness_cue)

    minutes = math.ceil(step.duration_sec / 60) if step.duration_sec else None

    return StepIconCard(
        step_id=step.id,
        icon_keys=step.icon_keys or [step.method or "cook"],
        title=step.instruction[:TITLE_MAX_CHARS],
        subtitle=f"{minutes} min" if minutes else "",
        badges=badges,
        cues=cues,
    )


def build_step_cards(steps: list[TimelineStep]) -> list[StepIconCard]:
    return [build_step_card(step) for step in steps]
