from __future__ import annotations

import argparse
import asyncio
from dataclasses import replace
import sys
from pathlib import Path

ROOT = Path(__file__).resolve().parents[1]
SRC = ROOT / "src"
sys.path.insert(0, str(SRC))

from inquest.config import ClientConfig, load_config
from inquest.domain.enums import GenerationStatus
from inquest.domain.models import Session, SourceSelection
from inquest.errors import InquestError
from inquest.generation import GenerationJobController, resume_generation
from inquest.logging_config import setup_logging
from inquest.session import SessionStateMachine
from inquest.topology import narrative_title, suspect_names
from inquest.transport import CaseClient
from inquest.util.time import format_remaining


async def _prompt(text: str = "> ") -> str:
    return (await asyncio.to_thread(input, text)).strip()


async def _choose(options: list[str], title: str) -> str | None:
    if not options:
        return None
    print(title)
    for idx, option in enumerate(options, start=1):
        print(f"{idx}) {option}")
    choice = await _prompt()
    if not choice.isdigit():
        return None
    index = int(choice) - 1
    if index < 0 or index >= len(options):
        return None
    return options[index]


def _all_suspects(machine: SessionStateMachine) -> list[str]:
    return suspect_names(machine.current.narrative_payload) if machine.current else []


def _print_header(session: Session) -> None:
    clock = session.clock
    budget = session.question_budget
    title = narrative_title(session.narrative_payload, f"사건 #{session.id}")
    print(f"== {title} [{session.status.value}]")
    print(
        f"Time {session.display_time}, {format_remaining(clock.remaining)} left"
        f"{' (urgent)' if clock.is_urgent else ''}. "
        f"Questions {budget.used}/{budget.limit}."
    )
    print(f"Location: {session.current_location or 'nowhere yet'}")


def _selection_from_args(args: argparse.Namespace) -> SourceSelection | None:
    hours = {}
    if args.start_hour is not None:
        hours["game_start_hour"] = args.start_hour
    if args.end_hour is not None:
        hours["game_end_hour"] = args.end_hour
    if args.template is not None:
        return SourceSelection.template(args.template, **hours)
    if args.draft is not None:
        return SourceSelection.published(args.draft, **hours)
    if args.prompt is not None:
        return SourceSelection.prompt(setting=args.prompt, suspect_count=args.suspects, **hours)
    return None


async def _generate(client: CaseClient, selection: SourceSelection, config: ClientConfig) -> str | None:
    controller = GenerationJobController(client, expiry_delay=config.completion_expiry)
    done = asyncio.Event()

    def on_change(job) -> None:
        print(f"... generation {job.status.value}")
        if job.status in (GenerationStatus.COMPLETE, GenerationStatus.FAILED):
            done.set()

    controller.add_listener(on_change)
    if await resume_generation(controller, client) is None:
        await controller.start(selection)
    if controller.status != GenerationStatus.FAILED:
        await done.wait()
    job = controller.snapshot()
    controller.clear()
    if job.status == GenerationStatus.FAILED:
        print(job.error_message)
        return None
    return job.job_id


async def _play(machine: SessionStateMachine, public_id: str) -> None:
    session = await machine.load(public_id)
    while True:
        _print_header(session)
        if not session.is_active:
            if machine.result is not None:
                result = machine.result
                print("Correct!" if result.correct else "Wrong suspect.")
                print(f"Culprit: {result.actual_killer}")
                print(result.explanation)
                for clue in result.key_clues:
                    print(f"- {clue}")
            return
        print("1) Move  2) Question  3) Investigate  4) Evidence  5) Accuse  6) Quit")
        choice = await _prompt()
        try:
            if choice == "1":
                location = await _choose(machine.locations(), "Where to?")
                if location is None:
                    print("Invalid location.")
                    continue
                moved = await machine.move(public_id, location)
                if moved.available_suspects:
                    print(f"Here: {', '.join(moved.available_suspects)}")
            elif choice == "2":
                names = [s.name for s in machine.suspects_here()] or _all_suspects(machine)
                suspect = await _choose(names, "Ask whom?")
                if suspect is None:
                    print("Nobody to question.")
                    continue
                question = await _prompt("Question: ")
                if not question:
                    continue
                reply = await machine.ask(public_id, question, suspect)
                print(f"{reply.suspect_name or suspect}: {reply.answer}")
            elif choice == "3":
                found = await machine.investigate(public_id)
                if not found:
                    print("Nothing new here.")
                for item in found:
                    print(f"- New evidence: {item.title}")
                    print(f"  {item.detail}")
            elif choice == "4":
                for item in machine.current.evidence if machine.current else []:
                    print(f"- {item.title}: {item.detail}")
                continue
            elif choice == "5":
                names = _all_suspects(machine)
                suspect = await _choose(names, "Accuse whom?")
                if suspect is None:
                    continue
                await machine.accuse(public_id, suspect)
            elif choice == "6":
                return
            else:
                print("Unknown action.")
                continue
        except InquestError as exc:
            print(f"! {exc}")
        if machine.current is not None:
            session = machine.current


async def _run(args: argparse.Namespace) -> None:
    config = load_config(args.config)
    if args.base_url:
        config = replace(config, base_url=args.base_url)
    setup_logging(args.log_level or config.log_level, config.log_file)

    async with CaseClient(config) as client:
        machine = SessionStateMachine(client)
        public_id = args.session
        if public_id is None:
            selection = _selection_from_args(args)
            if selection is None:
                print("Pass --session, --template, --draft or --prompt.")
                return
            if args.wait_generation:
                public_id = await _generate(client, selection, config)
                if public_id is None:
                    return
            else:
                public_id = (await machine.start(selection)).public_id
        await _play(machine, public_id)


def main() -> None:
    parser = argparse.ArgumentParser(description="Play a case against a running case server.")
    parser.add_argument("--config", type=str, default=None, help="YAML client config.")
    parser.add_argument("--base-url", type=str, default=None)
    parser.add_argument("--session", type=str, default=None, help="Public id of a session to resume.")
    parser.add_argument("--template", type=int, default=None, help="Start from a curated template.")
    parser.add_argument("--draft", type=int, default=None, help="Start from a published community case.")
    parser.add_argument("--prompt", type=str, default=None, help="Setting for a generated case.")
    parser.add_argument("--suspects", type=int, default=None, help="Suspect count for --prompt.")
    parser.add_argument("--start-hour", type=int, default=None)
    parser.add_argument("--end-hour", type=int, default=None)
    parser.add_argument(
        "--wait-generation",
        action="store_true",
        help="Create the case through the async generator and follow its progress.",
    )
    parser.add_argument("--log-level", type=str, default=None)
    args = parser.parse_args()
    asyncio.run(_run(args))


if __name__ == "__main__":
    main()
