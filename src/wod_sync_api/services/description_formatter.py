"""Human-readable rendering of workouts for activity descriptions and file notes."""
from datetime import timedelta
from typing import List, Optional

from wod_sync_api.models import Exercise, Workout, WorkoutResult, WorkoutSection, WorkoutType
from wod_sync_api.utils import clean_html_text

SEPARATOR = "─────────────────────────"
SYNC_TRAILER = "📤 Synced via WOD-Sync"

PLACEHOLDER_EXERCISES = {"descanso rest", "rest", "descanso"}


def is_placeholder_exercise(name: str) -> bool:
    return name.strip().lower() in PLACEHOLDER_EXERCISES


def format_duration(value: timedelta) -> str:
    """m:ss below an hour, h:mm:ss above; bare seconds under a minute."""
    total = int(value.total_seconds())
    hours, rem = divmod(total, 3600)
    minutes, seconds = divmod(rem, 60)
    if hours:
        return f"{hours}:{minutes:02d}:{seconds:02d}"
    if minutes:
        return f"{minutes}:{seconds:02d}"
    return f"{seconds}s"


def _number(value: float) -> str:
    return f"{value:.0f}"


class DescriptionFormatter:
    """Renders Workouts as multi-line text."""

    @staticmethod
    def format_exercise_line(exercise: Exercise) -> str:
        parts: List[str] = []
        quantity = exercise.primary_quantity
        if quantity == "distance" and exercise.distance > 0:
            parts.append(f"{_number(exercise.distance)}{exercise.distance_unit or 'm'}")
        elif quantity == "reps_per_round":
            parts.append(str(exercise.reps_per_round))
        elif exercise.reps > 0:
            parts.append(str(exercise.reps))

        parts.append(exercise.name)

        if exercise.weight > 0:
            parts.append(f"@ {_number(exercise.weight)}{exercise.weight_unit or 'kg'}")
        if exercise.calories > 0:
            parts.append(f"{exercise.calories} cal")

        line = "→ " + " ".join(p for p in parts if p)
        if exercise.pr:
            line += " 🏆"
        return line

    @staticmethod
    def format_section_result(section: WorkoutSection) -> List[str]:
        lines = []
        if section.rounds_completed > 0 and section.reps_achieved > 0:
            lines.append(f"✅ {section.rounds_completed}R + {section.reps_achieved} reps")
        elif section.rounds_completed > 0:
            lines.append(f"✅ {section.rounds_completed}/{section.rounds_completed} sets")
        elif section.reps_achieved > 0:
            lines.append(f"✅ {section.reps_achieved} reps")
        if section.rx:
            lines.append("💪 RX")
        return lines

    @classmethod
    def format_description(cls, workout: Workout) -> str:
        """
        Description shown on the destination activity.

        One block per section (title, cleaned notes, exercises, section
        result) separated by a rule, then the overall result. Placeholder
        rest entries are skipped. Exercises not attached to any section are
        listed after the sections.
        """
        lines: List[str] = []

        for i, section in enumerate(workout.sections):
            if i > 0:
                lines.extend(["", SEPARATOR, ""])
            lines.append(f"🏋️ {section.title}")
            notes = clean_html_text(section.notes)
            if notes:
                lines.append(notes)
            lines.append("")
            for exercise in workout.section_exercises(i):
                if not is_placeholder_exercise(exercise.name):
                    lines.append(cls.format_exercise_line(exercise))
            lines.append("")
            lines.extend(cls.format_section_result(section))

        loose = [ex for ex in workout.unassigned_exercises() if not is_placeholder_exercise(ex.name)]
        if loose:
            if workout.sections:
                lines.extend(["", SEPARATOR, ""])
            else:
                lines.extend([f"🏋️ {workout.name}", ""])
            lines.extend(cls.format_exercise_line(ex) for ex in loose)

        if workout.result is not None:
            lines.extend(["", SEPARATOR, ""])
            lines.extend(cls.format_result_summary(workout.result))

        return "\n".join(lines).strip()

    @staticmethod
    def format_result_summary(result: WorkoutResult) -> List[str]:
        lines = []
        if result.time is not None:
            lines.append(f"⏱️ {format_duration(result.time)}")
        if result.rounds > 0:
            if result.reps > 0:
                lines.append(f"🔄 {result.rounds} rounds + {result.reps} reps")
            else:
                lines.append(f"🔄 {result.rounds} rounds")
        if result.weight > 0:
            lines.append(f"🏋️ {result.weight:.0f} kg")
        if result.rx_plus:
            lines.append("⭐ Rx+")
        elif result.scaled:
            lines.append("📉 Scaled")
        else:
            lines.append("💪 RX")
        return lines

    @staticmethod
    def format_result_details(result: Optional[WorkoutResult]) -> List[str]:
        """Indented result block used in file notes."""
        if result is None:
            return []
        lines = ["", "🎯 Result:"]
        if result.time is not None:
            lines.append(f"  ⏱️ Time: {format_duration(result.time)}")
        if result.rounds > 0 and result.reps > 0:
            lines.append(f"  🔄 Rounds: {result.rounds} + {result.reps} reps")
        elif result.rounds > 0:
            lines.append(f"  🔄 Rounds: {result.rounds}")
        if result.weight > 0:
            lines.append(f"  🏋️ Weight: {result.weight:.1f} kg")
        if result.score and result.time is None and result.rounds == 0:
            lines.append(f"  📊 Score: {result.score}")
        if result.rx_plus:
            lines.append("  ⭐ Rx+")
        elif result.scaled:
            lines.append("  📉 Scaled")
        else:
            lines.append("  ✅ Rx")
        if result.notes:
            lines.append(f"  💬 Notes: {result.notes}")
        return lines

    @classmethod
    def build_notes(cls, workout: Workout) -> str:
        """Notes embedded in the encoded training file."""
        lines = [f"📋 {workout.name}"]
        if workout.type != WorkoutType.GENERIC:
            lines.append(f"🏋️ Type: {workout.type.value}")
        if workout.description:
            lines.extend(["", "📝 Workout:", workout.description])
        lines.extend(cls.format_result_details(workout.result))
        if workout.box_name:
            lines.extend(["", f"🏠 Box: {workout.box_name}"])
        lines.extend(["", SYNC_TRAILER])
        return "\n".join(lines)

    @classmethod
    def format_details(cls, workout: Workout) -> str:
        """Console view of a fetched workout."""
        header = f"{workout.date:%Y-%m-%d %H:%M}  {workout.name}  [{workout.type.value}]"
        body = workout.description or "(no details)"
        return f"{header}\n{'=' * len(header)}\n{body}\n"
