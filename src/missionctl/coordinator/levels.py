"""Agent level promotion and demotion rules."""

from __future__ import annotations

from dataclasses import dataclass, field


@dataclass(slots=True, frozen=True)
class LevelCriteria:
    min_tasks_completed: int
    min_avg_review_score: float
    min_time_in_level_days: int
    max_critical_violations_30d: int
    max_warning_violations_30d: int


LEVEL_UP_CRITERIA: dict[int, LevelCriteria] = {
    1: LevelCriteria(10, 0.7, 7, 0, 5),
    2: LevelCriteria(25, 0.8, 14, 0, 2),
    3: LevelCriteria(50, 0.9, 30, 0, 0),
}

MIN_LEVEL = 1
MAX_LEVEL = 4


@dataclass(slots=True)
class LevelMetrics:
    """Rolling snapshot of an agent's track record at its current level."""

    tasks_completed: int = 0
    avg_review_score: float = 0.0
    time_in_level_days: int = 0
    critical_violations_7d: int = 0
    critical_violations_30d: int = 0
    violations_30d: int = 0
    consecutive_failures: int = 0


@dataclass(slots=True)
class LevelUpEvaluation:
    eligible: bool
    reason: str
    unmet_criteria: list[str] = field(default_factory=list)


@dataclass(slots=True)
class LevelDownEvaluation:
    should_demote: bool
    reason: str
    target_level: int | None = None


def evaluate_level_up(metrics: LevelMetrics, current_level: int) -> LevelUpEvaluation:
    """Promotion needs every criterion of the current level met."""
    if current_level >= MAX_LEVEL:
        return LevelUpEvaluation(False, "Already at maximum level")
    criteria = LEVEL_UP_CRITERIA.get(current_level)
    if criteria is None:
        return LevelUpEvaluation(False, "No promotion criteria defined")

    unmet: list[str] = []
    if metrics.tasks_completed < criteria.min_tasks_completed:
        unmet.append(f"Tasks completed: {metrics.tasks_completed}/{criteria.min_tasks_completed}")
    if metrics.avg_review_score < criteria.min_avg_review_score:
        unmet.append(f"Avg review score: {metrics.avg_review_score:.2f}/{criteria.min_avg_review_score}")
    if metrics.time_in_level_days < criteria.min_time_in_level_days:
        unmet.append(
            f"Time in level: {metrics.time_in_level_days}/{criteria.min_time_in_level_days} days"
        )
    if metrics.critical_violations_30d > criteria.max_critical_violations_30d:
        unmet.append(
            f"Critical violations (30d): {metrics.critical_violations_30d} "
            f"(max {criteria.max_critical_violations_30d})"
        )
    if metrics.violations_30d > criteria.max_warning_violations_30d:
        unmet.append(
            f"Warning violations (30d): {metrics.violations_30d} (max {criteria.max_warning_violations_30d})"
        )

    if unmet:
        return LevelUpEvaluation(False, f"Unmet criteria: {'; '.join(unmet)}", unmet)
    return LevelUpEvaluation(
        True, f"All criteria met for promotion from L{current_level} to L{current_level + 1}"
    )


def evaluate_level_down(metrics: LevelMetrics, current_level: int) -> LevelDownEvaluation:
    """Demotion triggers on any single rule; inactivity drops straight to L1."""
    if current_level <= MIN_LEVEL:
        return LevelDownEvaluation(False, "Already at minimum level")
    one_down = max(MIN_LEVEL, current_level - 1)

    if metrics.critical_violations_7d >= 3:
        return LevelDownEvaluation(
            True,
            f"{metrics.critical_violations_7d} critical violations in 7 days (threshold: 3)",
            one_down,
        )
    if metrics.avg_review_score < 0.5 and metrics.tasks_completed >= 10:
        return LevelDownEvaluation(
            True, f"Average review score {metrics.avg_review_score:.2f} below 0.5 threshold", one_down
        )
    if metrics.consecutive_failures >= 5:
        return LevelDownEvaluation(
            True, f"{metrics.consecutive_failures} consecutive task failures (threshold: 5)", one_down
        )
    if metrics.time_in_level_days > 30 and metrics.tasks_completed == 0:
        return LevelDownEvaluation(True, "Inactive for 30+ days with no tasks completed", MIN_LEVEL)
    return LevelDownEvaluation(False, "No demotion triggers met")
