"""
Terminal front end for the companion.

    python -m apps.companion.console --text "I feel hopeless lately"
    python -m apps.companion.console --record 5

After the optional initial analysis an interactive chat starts:
plain lines are sent as text turns, `/voice` records a voice turn,
`/analyze <text>` runs another analysis, `/quit` exits.
"""

import argparse
import asyncio
import logging
from typing import Optional

from libs.media_capture import CaptureKind, MediaCaptureAdapter

from apps.settings import load_settings
from apps.companion.errors import InputError
from apps.companion.prompt_client import PromptClient
from apps.companion.schemas import AnalysisRequest, ChatMessage
from apps.companion.session import CompanionController
from apps.companion.usecases.analyze import AnalysisOrchestrator


def _build_capture(samplerate: int) -> MediaCaptureAdapter:
    # sounddevice 属于 capture extra，只有需要录音时才导入
    from libs.media_capture.sounddevice_backend import SoundDeviceMedia, WavRecorderFactory

    return MediaCaptureAdapter(SoundDeviceMedia(samplerate=samplerate), WavRecorderFactory())


class ConsoleUI:
    def __init__(self, controller: CompanionController, voice_turn_seconds: float):
        self.controller = controller
        self.voice_turn_seconds = voice_turn_seconds
        self._shown_messages = 0
        self._last_shown: Optional[ChatMessage] = None
        self._last_notice_seq = 0

    def flush(self) -> None:
        session = self.controller.session
        history = session.chat_history
        start = self._shown_messages
        # 主动开场会原地替换 "Analysis complete" 那条消息
        if start and history[start - 1] is not self._last_shown:
            start -= 1
        for message in history[start:]:
            speaker = "You" if message.role == "user" else "TherapyAI"
            print(f"{speaker}: {message.text}")
        self._shown_messages = len(history)
        self._last_shown = history[-1] if history else None

        for notice in session.notices:
            if notice.seq <= self._last_notice_seq:
                continue
            marker = "!" if notice.variant == "destructive" else "*"
            print(f"[{marker}] {notice.title}: {notice.description}")
            self._last_notice_seq = notice.seq

    def print_results(self) -> None:
        for item in self.controller.session.analysis_history:
            emotion = f" | emotion: {item.emotion}" if item.emotion else ""
            print(f"  - {item.input}: {item.diagnosis}{emotion}")

    async def record(self, seconds: float) -> Optional[str]:
        if self.controller.capture is None:
            print("Recording is not available (no capture backend).")
            return None
        if not await self.controller.start_recording(CaptureKind.AUDIO):
            self.flush()
            return None
        self.flush()
        await asyncio.sleep(seconds)
        data_uri = await self.controller.finish_recording()
        self.flush()
        return data_uri

    async def analyze(self, text: Optional[str] = None, voice: Optional[str] = None) -> None:
        try:
            await self.controller.run_analysis(AnalysisRequest(text_input=text, voice_input_data_uri=voice))
        except InputError:
            pass
        self.flush()
        self.print_results()

    async def chat_loop(self) -> None:
        while True:
            line = (await asyncio.to_thread(input, "> ")).strip()
            if not line:
                continue
            if line in ("/quit", "/exit"):
                return
            if line == "/voice":
                data_uri = await self.record(self.voice_turn_seconds)
                if data_uri:
                    await self.controller.send_user_turn(audio_data_uri=data_uri)
            elif line.startswith("/analyze"):
                await self.analyze(text=line[len("/analyze"):].strip() or None)
                continue
            else:
                await self.controller.send_user_turn(text=line)
            self.flush()


async def run_console(args: argparse.Namespace) -> None:
    settings = load_settings()
    capture = _build_capture(args.samplerate) if (args.record or args.voice_chat) else None
    controller = CompanionController.create(
        AnalysisOrchestrator(PromptClient.from_settings(settings)), capture=capture
    )
    ui = ConsoleUI(controller, voice_turn_seconds=args.voice_chat)
    ui.flush()
    try:
        voice = await ui.record(args.record) if args.record else None
        if args.text or voice:
            await ui.analyze(text=args.text, voice=voice)
        await ui.chat_loop()
    except (EOFError, KeyboardInterrupt):
        print()
    finally:
        await controller.close()


def main() -> None:
    parser = argparse.ArgumentParser(description="TherapyAI companion console")
    parser.add_argument("--text", default=None, help="先对这段文本做一次分析")
    parser.add_argument("--record", type=float, default=0, help="录音 N 秒并做语音分析")
    parser.add_argument("--voice-chat", type=float, default=0, help="启用聊天中的 /voice，录音 N 秒")
    parser.add_argument("--samplerate", type=int, default=16000)
    parser.add_argument("--verbose", action="store_true")
    args = parser.parse_args()

    logging.basicConfig(
        level=logging.INFO if args.verbose else logging.WARNING,
        format="%(asctime)s %(levelname)s %(name)s %(message)s",
    )
    asyncio.run(run_console(args))


if __name__ == "__main__":
    main()
