"""
会话控制器验证脚本

运行方式：pytest test_companion_session.py

端到端走一遍：分析 -> 主诊断 -> 主动开场；以及失败、忙碌、历史上限、录音通知、控制台输出与会话注册表。
"""

import asyncio
import os
import sys

import pytest

# 添加当前目录到系统路径
current_dir = os.path.dirname(os.path.abspath(__file__))
sys.path.append(current_dir)

from libs.media_capture import (
    CaptureKind,
    DeviceError,
    MediaCaptureAdapter,
    MediaDevices,
    MediaRecorder,
    MediaStream,
    MediaTrack,
    RecorderFactory,
)

from apps.companion.console import ConsoleUI
from apps.companion.errors import InputError, ServiceBusyError
from apps.companion.messages import ANALYSIS_BUSY_MESSAGE, ANALYSIS_COMPLETE_MESSAGE, ANALYZING_PLACEHOLDER
from apps.companion.schemas import AnalysisRequest, AnalysisResult, ChatbotResponse, ConditionFinding, Modality
from apps.companion.session import CompanionController, SessionRegistry
from apps.companion.state import MAX_NOTICES
from apps.companion.usecases.analyze import AnalysisOrchestrator

VOICE_URI = "data:audio/webm;base64,AAAA"


class FakePromptClient:
    def __init__(self, analysis=None, reply="Based on the recent analysis, how are you feeling?"):
        self.analysis = analysis or {}
        self.reply = reply
        self.analysis_calls = []
        self.chat_requests = []
        self.gate = None

    async def run_analysis(self, modality, payload):
        self.analysis_calls.append(modality)
        if self.gate is not None:
            await self.gate.wait()
        result = self.analysis.get(modality, AnalysisResult())
        if isinstance(result, Exception):
            raise result
        return result

    async def run_chat_turn(self, request):
        self.chat_requests.append(request)
        return ChatbotResponse(bot_response=self.reply)

    async def transcribe(self, audio_data_uri):
        return "transcribed"


def _controller(fake, capture=None):
    return CompanionController.create(AnalysisOrchestrator(fake), capture=capture)


def test_hopeless_text_starts_condition_chat_once():
    fake = FakePromptClient(
        analysis={
            Modality.TEXT: AnalysisResult(
                conditions=[ConditionFinding(name="Depression", confidence=72.3, suggestions=["Reach out to a friend"])],
                emotion="sad",
            )
        }
    )
    controller = _controller(fake)
    run = asyncio.run(controller.run_analysis(AnalysisRequest(text_input="I feel hopeless")))
    session = controller.session

    assert run.success
    assert run.primary_condition == "Depression"
    assert session.detected_condition == "Depression"
    assert session.analysis_history[0].input == "I feel hopeless"
    assert session.analysis_history[0].diagnosis == "Depression (72.3%)"
    assert session.analysis_history[0].emotion == "sad"

    assert len(fake.chat_requests) == 1
    assert fake.chat_requests[0].user_message == ""
    assert fake.chat_requests[0].detected_condition == "Depression"
    assert session.chat_history[-1].text == fake.reply
    assert not session.is_loading
    assert not session.is_bot_loading

    snapshot = session.snapshot().model_dump(mode="json")
    assert snapshot["text_analysis"]["conditions"][0]["name"] == "Depression"
    assert snapshot["voice_analysis"] is None


def test_no_condition_posts_analysis_complete():
    controller = _controller(FakePromptClient(analysis={Modality.TEXT: AnalysisResult(emotion="neutral")}))
    run = asyncio.run(controller.run_analysis(AnalysisRequest(text_input="just a normal day")))

    assert run.success and run.primary_condition is None
    assert controller.session.chat_history[-1].text == ANALYSIS_COMPLETE_MESSAGE
    assert controller.session.analysis_history[0].diagnosis == "N/A"


def test_busy_backend_is_absorbed_into_chat():
    fake = FakePromptClient(analysis={Modality.TEXT: ServiceBusyError("503 Service Unavailable: overloaded")})
    controller = _controller(fake)
    run = asyncio.run(controller.run_analysis(AnalysisRequest(text_input="hello")))
    session = controller.session

    assert not run.success
    assert run.error == ANALYSIS_BUSY_MESSAGE
    assert session.notices[-1].title == "Service Busy"
    assert session.chat_history[-1].text == f"Sorry, there was an error during the analysis: {ANALYSIS_BUSY_MESSAGE}"
    assert all(item.diagnosis != ANALYZING_PLACEHOLDER for item in session.analysis_history)
    assert session.detected_condition is None
    assert not session.is_loading
    assert fake.chat_requests == []


def test_partial_failure_notifies_and_keeps_results():
    fake = FakePromptClient(
        analysis={
            Modality.TEXT: AnalysisResult(conditions=[ConditionFinding(name="Stress", confidence=60)]),
            Modality.VOICE: ServiceBusyError(),
        }
    )
    controller = _controller(fake)
    run = asyncio.run(
        controller.run_analysis(AnalysisRequest(text_input="deadlines", voice_input_data_uri=VOICE_URI))
    )

    assert run.success
    assert run.outcome.voice_analysis is None
    titles = [n.title for n in controller.session.notices]
    assert "Service Busy" in titles
    assert [item.input for item in controller.session.analysis_history] == ["deadlines"]


def test_empty_request_requires_input():
    controller = _controller(FakePromptClient())
    with pytest.raises(InputError):
        asyncio.run(controller.run_analysis(AnalysisRequest()))
    assert controller.session.notices[-1].title == "Input Required"
    assert controller.session.analysis_history == []


def test_concurrent_analysis_is_ignored():
    async def run():
        fake = FakePromptClient()
        fake.gate = asyncio.Event()
        controller = _controller(fake)
        first = asyncio.create_task(controller.run_analysis(AnalysisRequest(text_input="one")))
        await asyncio.sleep(0)
        assert controller.session.is_loading
        assert controller.session.analysis_history[0].diagnosis == ANALYZING_PLACEHOLDER

        assert await controller.run_analysis(AnalysisRequest(text_input="two")) is None
        fake.gate.set()
        assert (await first).success
        assert fake.analysis_calls == [Modality.TEXT]

    asyncio.run(run())


def test_analysis_history_keeps_five_newest():
    controller = _controller(FakePromptClient())

    async def run():
        for i in range(7):
            await controller.run_analysis(AnalysisRequest(text_input=f"entry {i}"))

    asyncio.run(run())
    assert [item.input for item in controller.session.analysis_history] == [
        "entry 6",
        "entry 5",
        "entry 4",
        "entry 3",
        "entry 2",
    ]


class _Track(MediaTrack):
    def __init__(self):
        self.stopped = 0

    def stop(self):
        self.stopped += 1


class _Devices(MediaDevices):
    def __init__(self, error=None):
        self.error = error

    async def get_user_media(self, audio, video):
        if self.error is not None:
            raise self.error
        return MediaStream([_Track()])


class _Recorder(MediaRecorder):
    def start(self):
        self.state = "recording"

    def stop(self):
        self.state = "inactive"
        self.on_data_available(b"voice")
        self.on_stop()


class _Recorders(RecorderFactory):
    def is_type_supported(self, mime_type):
        return mime_type == "audio/webm"

    def create(self, stream, mime_type=""):
        return _Recorder(stream, mime_type)


def test_recording_notices():
    async def run():
        capture = MediaCaptureAdapter(_Devices(), _Recorders())
        controller = _controller(FakePromptClient(), capture=capture)
        assert await controller.start_recording(CaptureKind.AUDIO)
        assert controller.session.notices[-1].title == "Recording Started"

        data_uri = await controller.finish_recording()
        assert data_uri.startswith("data:audio/webm;base64,")
        assert controller.session.notices[-1].description == "Voice input ready for analysis."
        await controller.close()

        denied = _controller(
            FakePromptClient(),
            capture=MediaCaptureAdapter(_Devices(error=DeviceError(CaptureKind.AUDIO, "not_found")), _Recorders()),
        )
        assert not await denied.start_recording(CaptureKind.AUDIO)
        assert denied.session.notices[-1].title == "Mic Error"
        assert denied.session.notices[-1].description == "No microphone found. Please connect a microphone."

    asyncio.run(run())


def test_console_prints_notices_past_the_cap(capsys):
    controller = _controller(FakePromptClient())
    ui = ConsoleUI(controller, voice_turn_seconds=0)
    ui.flush()
    capsys.readouterr()

    total = MAX_NOTICES + 5
    for i in range(total):
        controller.session.notify("Recording Started", f"notice {i}")
        ui.flush()
    out = capsys.readouterr().out

    assert out.count("[*] Recording Started") == total
    assert f"notice {total - 1}\n" in out
    assert len(controller.session.notices) == MAX_NOTICES
    assert controller.session.notices[-1].seq == total


def test_console_prints_replaced_opening(capsys):
    controller = _controller(FakePromptClient())
    ui = ConsoleUI(controller, voice_turn_seconds=0)
    controller.session.append_message("model", ANALYSIS_COMPLETE_MESSAGE)
    ui.flush()
    capsys.readouterr()

    controller.session.replace_or_append_model_message("How have you been sleeping?")
    ui.flush()
    assert capsys.readouterr().out == "TherapyAI: How have you been sleeping?\n"
    ui.flush()
    assert capsys.readouterr().out == ""


def test_registry_evicts_least_recently_used():
    fake = FakePromptClient()
    registry = SessionRegistry(factory=lambda: _controller(fake), max_sessions=2)
    first = registry.create()
    second = registry.create()
    assert registry.get(first.session_id) is first

    third = registry.create()
    assert len(registry) == 2
    assert registry.get(second.session_id) is None
    assert registry.get(first.session_id) is first
    assert registry.get(third.session_id) is third

    assert asyncio.run(registry.drop(first.session_id))
    assert not asyncio.run(registry.drop(first.session_id))

    with pytest.raises(ValueError):
        SessionRegistry(factory=lambda: _controller(fake), max_sessions=0)


if __name__ == "__main__":
    sys.exit(pytest.main([__file__, "-q"]))
