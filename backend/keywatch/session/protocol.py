"""Strict internal events parsed from loosely-shaped transport messages."""
from dataclasses import dataclass
from typing import Any, List, Optional, Union
from pydantic import BaseModel, ConfigDict, Field, ValidationError
from keywatch.core.errors import MalformedPayloadError
from keywatch.core.logging import logger

IDENTIFY_WORDS_TOOL = "identify_the_words"


# Wire shapes. Unknown fields are ignored; wrong types fail validation.

class _WireModel(BaseModel):
    model_config = ConfigDict(extra="ignore", populate_by_name=True)


class _Segment(_WireModel):
    speaker_label: Optional[str] = Field(default=None, alias="speakerLabel")


class _InputTranscription(_WireModel):
    text: Optional[str] = None
    segments: List[_Segment] = Field(default_factory=list)


class _InlineData(_WireModel):
    data: Optional[str] = None
    mime_type: Optional[str] = Field(default=None, alias="mimeType")


class _Part(_WireModel):
    inline_data: Optional[_InlineData] = Field(default=None, alias="inlineData")


class _ModelTurn(_WireModel):
    parts: List[_Part] = Field(default_factory=list)


class _ServerContent(_WireModel):
    input_transcription: Optional[_InputTranscription] = Field(default=None, alias="inputTranscription")
    model_turn: Optional[_ModelTurn] = Field(default=None, alias="modelTurn")
    turn_complete: Optional[bool] = Field(default=None, alias="turnComplete")


class _FunctionCall(_WireModel):
    id: Optional[str] = None
    name: str
    args: dict = Field(default_factory=dict)


class _ToolCall(_WireModel):
    function_calls: List[_FunctionCall] = Field(default_factory=list, alias="functionCalls")


class _ServerMessage(_WireModel):
    server_content: Optional[_ServerContent] = Field(default=None, alias="serverContent")
    tool_call: Optional[_ToolCall] = Field(default=None, alias="toolCall")


# Internal events, in the order they are dispatched for one message.

@dataclass(frozen=True)
class AudioReply:
    data: str


@dataclass(frozen=True)
class Transcription:
    text: str
    speaker: Optional[str] = None


@dataclass(frozen=True)
class ToolCall:
    id: Optional[str]
    name: str
    word: str


@dataclass(frozen=True)
class TurnComplete:
    pass


InboundEvent = Union[AudioReply, Transcription, ToolCall, TurnComplete]


def _validate_part(model, value: Any, label: str):
    try:
        return model.model_validate(value)
    except ValidationError as e:
        logger.warning(f"Dropping malformed '{label}': {e}")
        return None


def parse_server_message(raw: Any) -> List[InboundEvent]:
    """
    Validate one transport message and split it into internal events.

    `serverContent` and `toolCall` are validated separately, so a malformed
    part does not discard the other. Every `identify_the_words` call yields a
    ToolCall, with an empty word when its argument is unusable, so that it
    is still acknowledged.

    Raises:
        MalformedPayloadError: if the message is not an object, or none of
            its present parts have a usable shape
    """
    if not isinstance(raw, dict):
        raise MalformedPayloadError(f"Expected a JSON object, got {type(raw).__name__}")

    present = [key for key in ("serverContent", "toolCall") if raw.get(key) is not None]
    content = _validate_part(_ServerContent, raw["serverContent"], "serverContent") if "serverContent" in present else None
    tool_call = _validate_part(_ToolCall, raw["toolCall"], "toolCall") if "toolCall" in present else None
    if present and content is None and tool_call is None:
        raise MalformedPayloadError(f"No usable part in message with {', '.join(present)}")

    events: List[InboundEvent] = []

    if content and content.model_turn and content.model_turn.parts:
        inline = content.model_turn.parts[0].inline_data
        if inline and inline.data:
            events.append(AudioReply(data=inline.data))

    if content and content.input_transcription and content.input_transcription.text:
        transcription = content.input_transcription
        speaker = transcription.segments[-1].speaker_label if transcription.segments else None
        events.append(Transcription(text=transcription.text, speaker=speaker or None))

    if tool_call:
        for call in tool_call.function_calls:
            if call.name != IDENTIFY_WORDS_TOOL:
                logger.debug(f"Ignoring unknown tool call '{call.name}'")
                continue
            word = call.args.get("word")
            if not isinstance(word, str):
                logger.warning(f"Tool call {call.id} without a usable 'word' argument")
                word = ""
            events.append(ToolCall(id=call.id, name=call.name, word=word))

    if content and content.turn_complete:
        events.append(TurnComplete())

    return events
