"""Render the state machine with rich."""
from __future__ import annotations

from rich.align import Align
from rich.console import Group, RenderableType
from rich.panel import Panel
from rich.table import Table
from rich.text import Text

from dictation_trainer.grader import local_grade
from dictation_trainer.session import SETTINGS_FIELDS, SessionMachine, State

SPINNER_FRAMES = "⠋⠙⠹⠸⠼⠴⠦⠧⠇⠏"

BORDER = "cyan"


def _title(machine: SessionMachine) -> str:
    s = machine.settings
    return (
        f"Dictation Trainer - Voice:{s.voice} | Level:TOEIC{s.level} | "
        f"Topic:{s.topic} | Length:{s.words}w | Speed:{s.speed:.1f}x"
    )


def _hints(*pairs: tuple[str, str]) -> Text:
    text = Text()
    for i, (key, desc) in enumerate(pairs):
        if i:
            text.append("  ")
        text.append(key, style="bold magenta")
        text.append(f":{desc}", style="dim")
    return text


def _spinner(machine: SessionMachine, label: str) -> Text:
    frame = SPINNER_FRAMES[machine.spinner_frame % len(SPINNER_FRAMES)]
    return Text.assemble((frame, "magenta"), " ", label)


def _error(machine: SessionMachine) -> RenderableType:
    if not machine.error:
        return Text()
    return Text(f"Error: {machine.error}", style="bold red")


def _frame(machine: SessionMachine, *body: RenderableType, hints: Text | None = None) -> Panel:
    parts: list[RenderableType] = list(body)
    parts.append(_error(machine))
    if hints is not None:
        parts.extend([Text(), hints])
    return Panel(
        Group(*parts),
        title=_title(machine),
        title_align="left",
        border_style=BORDER,
        width=min(machine.width, 100),
    )


def render_welcome(machine: SessionMachine) -> RenderableType:
    box = Panel(
        Align.center(Group(
            Text("Welcome to Dictation Trainer!", style="bold magenta", justify="center"),
            Text(),
            Text("LLM-powered English dictation practice", justify="center"),
            Text(),
            Text("Press any key to start...", style="dim", justify="center"),
        )),
        border_style=BORDER,
        width=60,
    )
    tips = Text(
        "Tips for getting started:\n\n"
        "• Listen carefully to the audio\n"
        "• Type what you hear and press Enter\n"
        "• Press Ctrl+R to replay the audio while typing\n"
        "• Press ? for help, Q to quit",
        style="dim",
    )
    return Group(Text(), box, Text(), tips)


def render_listening(machine: SessionMachine) -> RenderableType:
    cursor = Text("█", style="blink")
    line = Text("> ", style="bold cyan")
    if machine.input_buffer:
        line.append(machine.input_buffer)
    else:
        line.append("Type what you hear...", style="dim")
    line.append_text(cursor)
    replays = machine.session.replay_count if machine.session else 0
    return _frame(
        machine,
        Text(f"Type what you heard (replays: {replays})", style="bold"),
        Text(),
        line,
        hints=_hints(("Enter", "Submit"), ("Ctrl+R", "Replay"), ("Ctrl+S", "Settings"),
                     ("Ctrl+N", "New"), ("Ctrl+C", "Quit")),
    )


def _mistake_table(mistakes) -> Table:
    table = Table(show_header=True, header_style="bold", box=None, padding=(0, 2))
    table.add_column("#", justify="right", style="dim")
    table.add_column("Expected", style="green")
    table.add_column("You typed", style="red")
    table.add_column("Kind", style="dim")
    for m in mistakes:
        table.add_row(str(m.position + 1), m.expected or "—", m.actual or "—", m.kind)
    return table


def _stats_line(machine: SessionMachine) -> Text:
    stats = machine.stats
    if stats is None or stats.graded_sessions == 0:
        return Text()
    return Text(
        f"Last 30 days: {stats.graded_sessions} rounds, "
        f"avg score {stats.average_score:.0f}, avg WER {stats.average_wer:.2f}",
        style="dim",
    )


def render_result(machine: SessionMachine) -> RenderableType:
    session = machine.session
    hints = _hints(("N", "Next"), ("R", "Replay"), ("S", "Settings"), ("Q", "Quit"))
    if session is None:
        return _frame(machine, Text("No round to show."), hints=hints)

    body: list[RenderableType] = []
    grade = session.grade
    if grade is not None:
        style = "bold green" if grade.is_perfect else "bold yellow"
        body.append(Text(f"Score: {grade.score}%   WER: {grade.wer:.2f}", style=style))
        body.append(Text())
        if grade.mistakes:
            body.append(_mistake_table(grade.mistakes))
            body.append(Text())
    elif session.user_input:
        # grading failed: show a plain word-by-word comparison instead
        estimate = local_grade(session.sentence, session.user_input)
        body.append(Text(
            f"Not graded. Word-by-word comparison (about {estimate.score}%):", style="bold yellow",
        ))
        if estimate.mistakes:
            body.append(_mistake_table(estimate.mistakes))
        body.append(Text())

    body.append(Text.assemble(("Answer: ", "bold"), (session.sentence, "green")))
    if session.user_input:
        body.append(Text.assemble(("You:    ", "bold"), session.user_input))

    if grade is not None and grade.explanation:
        body.extend([Text(), Text(grade.explanation, style="italic")])
    if grade is not None and grade.alternatives:
        body.append(Text())
        for i, alt in enumerate(grade.alternatives, 1):
            body.append(Text(f"Alternative {i}: {alt}", style="cyan"))

    body.extend([Text(), _stats_line(machine)])
    return _frame(machine, *body, hints=hints)


def render_settings(machine: SessionMachine) -> RenderableType:
    cfg = machine.draft or machine.settings
    values = {
        "voice": f"{cfg.voice:<10}",
        "level": f"TOEIC {cfg.level:<4}",
        "topic": f"{cfg.topic:<10}",
        "words": f"{cfg.words:<2} words",
        "speed": f"{cfg.speed:.1f}x",
    }
    lines = [Text("Settings", style="bold magenta"), Text()]
    for i, name in enumerate(SETTINGS_FIELDS):
        label = f"{name.capitalize():<7}: {values[name]}  (←/→)"
        if i == machine.settings_index:
            lines.append(Text(f"▸ {label}", style="bold reverse"))
        else:
            lines.append(Text(f"  {label}"))
    lines.extend([Text(), Text("─" * 40, style="dim"),
                  _hints(("Enter", "Save & Next Round"), ("Esc", "Cancel"))])
    return Panel(Group(*lines, _error(machine)), border_style="magenta", width=50)


def render_help(machine: SessionMachine) -> RenderableType:
    table = Table(show_header=False, box=None, padding=(0, 2))
    table.add_column(style="bold magenta")
    table.add_column()
    for key, desc in (
        ("Enter", "submit your answer / next round"),
        ("Ctrl+R", "replay audio while typing"),
        ("Ctrl+S", "open settings while typing"),
        ("Ctrl+N", "start a new round while typing"),
        ("R / S / N", "replay / settings / next on the result screen"),
        ("↑ ↓ ← →", "move and change values in settings"),
        ("Esc", "leave settings without saving"),
        ("Q / Ctrl+C", "quit"),
    ):
        table.add_row(key, desc)
    return Panel(Group(table, Text(), Text("Press any key to go back", style="dim")),
                 title="Help", border_style=BORDER, width=70)


def render(machine: SessionMachine) -> RenderableType:
    state = machine.state
    if state is State.WELCOME:
        return render_welcome(machine)
    if state is State.GENERATING:
        return _frame(machine, _spinner(machine, "Generating sentence..."))
    if state is State.PLAYING:
        label = "Preparing audio..." if machine.pending is not None and (
            machine.session is None or machine.session.audio_path is None
        ) else "Playing..."
        return _frame(machine, _spinner(machine, label))
    if state is State.LISTENING:
        return render_listening(machine)
    if state is State.GRADING:
        return _frame(machine, _spinner(machine, "Grading your answer..."))
    if state is State.SHOWING_RESULT:
        return render_result(machine)
    if state is State.SETTINGS:
        return render_settings(machine)
    return render_help(machine)
