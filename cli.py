import argparse
import asyncio
import os
import sys

from dotenv import load_dotenv

from controller import ChatController, EmptyName, SessionState
from relay_client import HttpRelayClient, RelayServiceError
from storage import JsonFileStorage
from utils import configure_logging, strip_tags
from voice import PyttsxSpeaker

load_dotenv()

HELP_TEXT = "Commands: :live  :speech  :min  :rename  :end  :quit   (/name <new name> renames in-chat)"


class ConsoleView:
    """Prints the chat to the terminal; only new entries are written on each render."""

    def __init__(self, header: str = "AI Chatbot"):
        self.header = header
        self.minimized = False
        self._printed = 0
        self._hidden = 0
        self.live_agent_label = ""

    def render(self, entries):
        if len(entries) < self._printed:
            # display was cleared
            print("-" * 40)
            self._printed = 0
        new = entries[self._printed:]
        self._printed = len(entries)
        if self.minimized:
            self._hidden += len(new)
            if new:
                print(f"[{self.header}] {self._hidden} new message(s), :min to expand")
            return
        for entry in new:
            who = "🤖 " + entry.name if entry.sender == "bot" else "💬 " + entry.name
            print(f"{who}: {strip_tags(entry.text)}")

    def prompt_name(self, text, prefill=""):
        print(strip_tags(text))
        if prefill:
            print(f"(current name: {prefill})")

    def confirm(self, question):
        answer = input(f"{strip_tags(question)} [y/N] ")
        return answer.strip().lower() in ("y", "yes")

    def alert(self, text):
        print(f"⚠️  {strip_tags(text)}")

    def set_input_enabled(self, enabled, label):
        if not enabled and label.lower().startswith("sending"):
            print(f"   {label}")

    def set_live_agent(self, enabled, label, color):
        # mode switches are announced as status lines by the controller
        self.live_agent_label = label

    def set_minimized(self, minimized):
        self.minimized = minimized
        if not minimized:
            self._hidden = 0
        print(f"[{self.header}] {'minimized' if minimized else 'expanded'}")

    def set_speech(self, enabled):
        print(f"🔊 speech {'on' if enabled else 'off'}")


async def run(controller: ChatController, narrow: bool) -> None:
    controller.start(narrow_viewport=narrow)
    print(HELP_TEXT)
    while True:
        try:
            line = await asyncio.to_thread(input, "> ")
        except EOFError:
            break
        command = line.strip()

        if command == ":quit":
            break
        elif command == ":live":
            controller.toggle_live_agent()
        elif command == ":speech":
            controller.toggle_speech()
        elif command == ":min":
            controller.toggle_minimize()
        elif command == ":rename":
            controller.change_name()
        elif command == ":end":
            await controller.end_chat()
        elif controller.state is SessionState.AWAITING_NAME:
            try:
                controller.submit_name(line)
            except EmptyName:
                continue
        elif controller.state is SessionState.ENDED:
            print("The chat has ended. Type :quit to leave.")
        else:
            await controller.submit_message(line)

    await controller.wait_pending()


def main(argv=None) -> int:
    parser = argparse.ArgumentParser(description="Echo5 chatbot terminal client")
    parser.add_argument("--server", default=os.getenv("ECHO5_SERVER_URL", "http://localhost:5001"))
    parser.add_argument("--storage", default=os.getenv("ECHO5_STORAGE", "~/.echo5_chat.json"))
    parser.add_argument("--narrow", action="store_true", help="start collapsed")
    parser.add_argument("--no-speech", action="store_true", help="disable text-to-speech")
    args = parser.parse_args(argv)

    configure_logging(os.getenv("LOG_LEVEL", "WARNING"), json_output=False)

    client = HttpRelayClient(args.server)
    try:
        settings = client.bootstrap()
    except RelayServiceError as e:
        print(f"❌ {e}", file=sys.stderr)
        return 1

    speaker = None
    if settings.speech_available and not args.no_speech:
        try:
            speaker = PyttsxSpeaker()
        except (RuntimeError, OSError) as e:
            print(f"Speech unavailable: {e}", file=sys.stderr)

    print(f"💬 {settings.header_text}\n")
    controller = ChatController(
        view=ConsoleView(settings.header_text),
        relay=client,
        storage=JsonFileStorage(args.storage),
        settings=settings,
        speaker=speaker,
    )
    asyncio.run(run(controller, args.narrow))
    return 0


if __name__ == "__main__":
    sys.exit(main())
