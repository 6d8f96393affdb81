#!/usr/bin/env python3
"""
BioNet Chatbot - talk to a growing spiking network

Everything you type is fed to the network as characters and word concepts.
After each input the shell advances the engine for a fixed number of
simulated frames (30 fps clock) and prints whatever the network and its
teacher had to say.

Run with: python chatbot.py [--scale micro|small|large] [--api-url URL]
"""

import argparse
import logging
import os
import sys
import time

import numpy as np

# Add parent directory to path for imports
sys.path.insert(0, os.path.dirname(os.path.abspath(__file__)))

from bionet import (
    BioEngine,
    BioNetError,
    HttpTextGenerator,
    NotificationKind,
    Sender,
    config_for_scale,
    create_engine,
)


FRAME_RATE = 30.0


class Colors:
    """ANSI color codes for terminal output"""
    RESET = '\033[0m'
    BOLD = '\033[1m'
    DIM = '\033[2m'

    RED = '\033[91m'
    GREEN = '\033[92m'
    YELLOW = '\033[93m'
    BLUE = '\033[94m'
    MAGENTA = '\033[95m'
    CYAN = '\033[96m'
    WHITE = '\033[97m'


SENDER_COLORS = {
    Sender.SELF: Colors.MAGENTA,
    Sender.TEACHER: Colors.YELLOW,
    Sender.SYSTEM: Colors.CYAN,
    Sender.USER: Colors.GREEN,
}


def make_bar(value: float, width: int = 20, filled: str = '█', empty: str = '░') -> str:
    """Create a progress bar"""
    value = min(1.0, max(0.0, value))
    filled_count = int(value * width)
    return filled * filled_count + empty * (width - filled_count)


class Shell:
    """Drives one engine on a simulated clock."""

    def __init__(self, engine: BioEngine, frames_per_step: int = 45):
        self.engine = engine
        self.frames_per_step = frames_per_step
        self.clock = time.time()

    def advance(self, frames: int = None) -> None:
        """Run simulated frames, then print drained notifications."""
        for _ in range(frames or self.frames_per_step):
            self.clock += 1.0 / FRAME_RATE
            self.engine.tick(self.clock)
            self.engine.maintenance(self.clock)
        self.print_notifications()

    def print_notifications(self) -> None:
        for note in self.engine.drain_notifications():
            color = SENDER_COLORS.get(note.sender, Colors.WHITE)
            if note.kind == NotificationKind.UTTERANCE:
                print(f"{color}{Colors.BOLD}Brain:{Colors.RESET} {note.text}")
            else:
                print(f"{color}[{note.sender.value}] {note.text}{Colors.RESET}")


def print_status(engine: BioEngine) -> None:
    """Print the engine status dashboard"""
    stats = engine.stats()
    teacher = engine.teacher

    print(f"\n{Colors.BOLD}{'=' * 60}{Colors.RESET}")
    print(f"{Colors.BOLD}{Colors.CYAN}  BIONET STATUS{Colors.RESET}")
    print(f"{Colors.BOLD}{'=' * 60}{Colors.RESET}\n")

    print(f"  Mode:              {Colors.BOLD}{stats.mode.value}{Colors.RESET}")
    print(f"  Learning mode:     {'ON' if engine.learning_mode else 'off'}")
    print(f"  Tick:              {stats.tick:,}")
    print(f"  Neurons:           {stats.neuron_count:,} / {engine.config.max_neurons:,}")
    print(f"  Synapses:          {stats.synapse_count:,}")
    print()

    print(f"  {Colors.BOLD}Regions:{Colors.RESET}")
    for region in engine.store.regions.values():
        count = len(engine.store.neurons_in_region(region.id))
        bar = make_bar(count / max(1, region.target_count), width=15)
        tag = " *" if region.dynamic else ""
        print(f"    {region.id:12} rank {region.rank} [{bar}] {count:4}{tag}")
    print()

    print(f"  {Colors.BOLD}Teacher:{Colors.RESET} {teacher.status.value}")
    print(f"    {Colors.DIM}{teacher.thought}{Colors.RESET}")
    if teacher.awaited_word:
        print(f"    Awaiting '{teacher.awaited_word}', silence {teacher.silence}/{engine.config.teacher_patience}")
    print(f"    Lessons: {teacher.lessons_taught} taught, {teacher.lessons_learned} learned, "
          f"{teacher.corrections} corrections")
    print(f"{Colors.BOLD}{'=' * 60}{Colors.RESET}\n")


def print_health(engine: BioEngine) -> None:
    report = engine.health()
    color = Colors.GREEN if report.score > 0.8 else Colors.YELLOW if report.score > 0.5 else Colors.RED
    print(f"\n{Colors.BOLD}Network Health:{Colors.RESET}")
    print(f"  Score:             {color}[{make_bar(report.score)}]{Colors.RESET} {report.score:.2f}")
    print(f"  Isolated neurons:  {report.isolated_neurons}")
    print(f"  Weak synapses:     {report.weak_synapses}")
    print(f"  Mean weight:       {report.mean_weight:.2f}")
    if report.error_code:
        print(f"  {Colors.RED}Error: {report.error_code}{Colors.RESET}")
    print()


def print_help():
    """Print help information"""
    print(f"""
{Colors.BOLD}BioNet Chatbot - Commands{Colors.RESET}

  {Colors.CYAN}/reward{Colors.RESET}          - Reward recent activity
  {Colors.CYAN}/punish{Colors.RESET}          - Punish recent activity
  {Colors.CYAN}/teach <topic>{Colors.RESET}   - Start a curriculum (e.g. /teach dog)
  {Colors.CYAN}/stop{Colors.RESET}            - Stop the current curriculum
  {Colors.CYAN}/learn{Colors.RESET}           - Toggle learning mode
  {Colors.CYAN}/think{Colors.RESET}           - Toggle thinking mode
  {Colors.CYAN}/freeze{Colors.RESET}          - Toggle freeze
  {Colors.CYAN}/sleep{Colors.RESET}           - Sleep and consolidate
  {Colors.CYAN}/image <file.npy>{Colors.RESET} - Show a brightness grid to the retina
  {Colors.CYAN}/status{Colors.RESET}          - Show the status dashboard
  {Colors.CYAN}/health{Colors.RESET}          - Show network health
  {Colors.CYAN}/save [path]{Colors.RESET}     - Save a snapshot
  {Colors.CYAN}/load <path>{Colors.RESET}     - Load a snapshot or full save
  {Colors.CYAN}/help{Colors.RESET}            - Show this help
  {Colors.CYAN}/quit{Colors.RESET}            - Exit

Just type to talk to the network!
""")


def handle_command(shell: Shell, line: str) -> bool:
    """
    Run one slash command.

    Returns:
        False when the shell should exit
    """
    parts = line.split(maxsplit=1)
    cmd = parts[0].lower()
    arg = parts[1].strip() if len(parts) > 1 else ""
    engine = shell.engine

    if cmd in ['/quit', '/exit', '/q']:
        print(f"\n{Colors.CYAN}Shutting down after {engine.tick_count} ticks.{Colors.RESET}")
        return False

    elif cmd in ['/reward', '/punish']:
        report = engine.apply_reinforcement(cmd[1:], shell.clock)
        print(f"{Colors.GREEN}{report.kind.value}: {report.neurons_affected} neurons affected{Colors.RESET}")

    elif cmd == '/teach':
        if not arg:
            print(f"{Colors.RED}Usage: /teach <topic>{Colors.RESET}\n")
            return True
        engine.start_curriculum(arg, shell.clock)

    elif cmd == '/stop':
        engine.stop_curriculum(shell.clock)

    elif cmd == '/learn':
        state = engine.toggle_learning_mode()
        print(f"{Colors.CYAN}Learning mode {'ON' if state else 'off'}{Colors.RESET}")

    elif cmd == '/think':
        if engine.thinking:
            engine.stop_thinking()
        else:
            engine.start_thinking()
        print(f"{Colors.CYAN}Thinking {'ON' if engine.thinking else 'off'}{Colors.RESET}")

    elif cmd == '/freeze':
        state = engine.toggle_freeze()
        print(f"{Colors.CYAN}{'Frozen' if state else 'Running'}{Colors.RESET}")

    elif cmd == '/sleep':
        if engine.sleep(shell.clock) is None:
            print(f"{Colors.DIM}Already asleep.{Colors.RESET}")

    elif cmd == '/image':
        if not arg:
            print(f"{Colors.RED}Usage: /image <file.npy>{Colors.RESET}\n")
            return True
        try:
            stimulated = engine.process_image(np.load(arg), shell.clock)
        except (OSError, ValueError) as e:
            print(f"{Colors.RED}Image failed: {e}{Colors.RESET}\n")
            return True
        print(f"{Colors.DIM}{len(stimulated)} retina cells lit.{Colors.RESET}")

    elif cmd == '/status':
        print_status(engine)
        return True

    elif cmd == '/health':
        print_health(engine)
        return True

    elif cmd == '/save':
        filepath = arg or f"bionet_{int(time.time())}.bionet"
        try:
            engine.save(filepath)
            print(f"{Colors.GREEN}Saved to {filepath}{Colors.RESET}\n")
        except (OSError, BioNetError) as e:
            print(f"{Colors.RED}Save failed: {e}{Colors.RESET}\n")
        return True

    elif cmd == '/load':
        if not arg:
            print(f"{Colors.RED}Usage: /load <path>{Colors.RESET}\n")
            return True
        try:
            loaded = BioEngine.load(arg, config=engine.config, generator=engine.generator)
        except (OSError, BioNetError) as e:
            print(f"{Colors.RED}Load failed: {e}{Colors.RESET}\n")
            return True
        engine.shutdown()
        shell.engine = loaded
        print(f"{Colors.GREEN}Loaded {len(loaded.store):,} neurons from {arg}{Colors.RESET}\n")
        return True

    elif cmd == '/help':
        print_help()
        return True

    else:
        print(f"{Colors.RED}Unknown command. Type /help for available commands.{Colors.RESET}\n")
        return True

    shell.advance()
    return True


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Talk to a growing spiking network.")
    parser.add_argument("--scale", default="small", choices=["micro", "small", "large"])
    parser.add_argument("--seed", type=int, default=42)
    parser.add_argument("--load", help="Start from a saved engine")
    parser.add_argument("--api-url", help="OpenAI-compatible chat-completions URL for lesson generation")
    parser.add_argument("--model", default="gpt-3.5-turbo")
    parser.add_argument("--frames", type=int, default=45, help="Simulated frames per input")
    parser.add_argument("--log-level", default="WARNING")
    return parser


def main(argv=None):
    """Main chatbot loop"""
    args = build_parser().parse_args(argv)
    logging.basicConfig(
        level=getattr(logging, args.log_level.upper(), logging.WARNING),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    print(f"""
{Colors.BOLD}{Colors.CYAN}
+===========================================================+
|                                                           |
|   BIONET CHATBOT                                          |
|                                                           |
|   Keys, words and pixels become neurons.                  |
|   Firing wires them. Stress grows new regions.            |
|                                                           |
+===========================================================+
{Colors.RESET}
Type {Colors.CYAN}/help{Colors.RESET} for commands, or just start talking!
""")

    generator = HttpTextGenerator(url=args.api_url, model=args.model) if args.api_url else None

    print(f"{Colors.DIM}Initializing network...{Colors.RESET}")
    if args.load:
        engine = BioEngine.load(
            args.load, config=config_for_scale(args.scale, seed=args.seed), generator=generator
        )
    else:
        engine = create_engine(args.scale, generator=generator, seed=args.seed)
    print(f"{Colors.DIM}Network ready with {len(engine.store):,} neurons.{Colors.RESET}\n")

    shell = Shell(engine, frames_per_step=args.frames)

    while True:
        try:
            user_input = input(f"{Colors.GREEN}You:{Colors.RESET} ").strip()

            if not user_input:
                shell.advance()
                continue

            if user_input.startswith('/'):
                if not handle_command(shell, user_input):
                    break
            else:
                shell.engine.process_text(user_input, shell.clock)
                shell.advance()

        except KeyboardInterrupt:
            print(f"\n\n{Colors.CYAN}Interrupted. Use /quit to exit properly.{Colors.RESET}\n")

        except EOFError:
            break

    shell.engine.shutdown()


if __name__ == '__main__':
    main()
