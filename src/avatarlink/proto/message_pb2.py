"""Protocol buffer bindings for ``message.proto``.

The file descriptor mirrors ``message.proto`` in this directory and is
registered with the default descriptor pool at import time, after which the
protobuf runtime builds the message classes and enum constants exactly as it
does for ``protoc`` output. Keep both files in sync when the schema changes.
"""

from google.protobuf import descriptor_pb2 as _descriptor_pb2
from google.protobuf import descriptor_pool as _descriptor_pool
from google.protobuf.internal import builder as _builder

_FIELD = _descriptor_pb2.FieldDescriptorProto

_PACKAGE = "message"

_ENUMS = {
    "MessageType": [
        "MESSAGE_UNSPECIFIED",
        "MESSAGE_CLIENT_CONFIGURE_SESSION",
        "MESSAGE_SERVER_CONFIRM_SESSION",
        "MESSAGE_CLIENT_AUDIO_INPUT",
        "MESSAGE_SERVER_RESPONSE_ANIMATION",
        "MESSAGE_SERVER_ERROR",
        "MESSAGE_CLIENT_INTERRUPT",
        "MESSAGE_ERROR",
    ],
    "AudioFormat": ["AUDIO_FORMAT_UNSPECIFIED", "AUDIO_FORMAT_PCM_S16LE"],
    "TransportCompression": [
        "TRANSPORT_COMPRESSION_UNSPECIFIED",
        "TRANSPORT_COMPRESSION_NONE",
    ],
    "EgressType": ["EGRESS_TYPE_NONE", "EGRESS_TYPE_LIVEKIT", "EGRESS_TYPE_AGORA"],
}

# (field name, field type, type name for enum/message fields)
_MESSAGES = {
    "LiveKitEgressConfig": [
        ("url", _FIELD.TYPE_STRING, None),
        ("api_key", _FIELD.TYPE_STRING, None),
        ("api_secret", _FIELD.TYPE_STRING, None),
        ("room_name", _FIELD.TYPE_STRING, None),
        ("publisher_id", _FIELD.TYPE_STRING, None),
    ],
    "AgoraEgressConfig": [
        ("channel_name", _FIELD.TYPE_STRING, None),
        ("token", _FIELD.TYPE_STRING, None),
        ("uid", _FIELD.TYPE_UINT32, None),
        ("publisher_id", _FIELD.TYPE_STRING, None),
    ],
    "ClientConfigureSession": [
        ("sample_rate", _FIELD.TYPE_INT32, None),
        ("bitrate", _FIELD.TYPE_INT32, None),
        ("audio_format", _FIELD.TYPE_ENUM, "AudioFormat"),
        ("transport_compression", _FIELD.TYPE_ENUM, "TransportCompression"),
        ("egress_type", _FIELD.TYPE_ENUM, "EgressType"),
        ("livekit_egress", _FIELD.TYPE_MESSAGE, "LiveKitEgressConfig"),
        ("agora_egress", _FIELD.TYPE_MESSAGE, "AgoraEgressConfig"),
    ],
    "ServerConfirmSession": [
        ("connection_id", _FIELD.TYPE_STRING, None),
    ],
    "ClientAudioInput": [
        ("req_id", _FIELD.TYPE_STRING, None),
        ("audio", _FIELD.TYPE_BYTES, None),
        ("end", _FIELD.TYPE_BOOL, None),
    ],
    "ServerResponseAnimation": [
        ("connection_id", _FIELD.TYPE_STRING, None),
        ("req_id", _FIELD.TYPE_STRING, None),
        ("end", _FIELD.TYPE_BOOL, None),
    ],
    "ServerError": [
        ("connection_id", _FIELD.TYPE_STRING, None),
        ("req_id", _FIELD.TYPE_STRING, None),
        ("code", _FIELD.TYPE_INT32, None),
        ("message", _FIELD.TYPE_STRING, None),
    ],
    "ClientInterrupt": [
        ("req_id", _FIELD.TYPE_STRING, None),
    ],
    "Error": [
        ("req_id", _FIELD.TYPE_STRING, None),
        ("code", _FIELD.TYPE_INT32, None),
        ("reason", _FIELD.TYPE_STRING, None),
    ],
}

# Members of the Message.data oneof, in field-number order after `type`.
_ENVELOPE_VARIANTS = [
    ("client_configure_session", "ClientConfigureSession"),
    ("server_confirm_session", "ServerConfirmSession"),
    ("client_audio_input", "ClientAudioInput"),
    ("server_response_animation", "ServerResponseAnimation"),
    ("server_error", "ServerError"),
    ("client_interrupt", "ClientInterrupt"),
    ("error", "Error"),
]


def _add_field(msg, name, number, field_type, type_name=None, oneof_index=None):
    field = msg.field.add()
    field.name = name
    field.number = number
    field.label = _FIELD.LABEL_OPTIONAL
    field.type = field_type
    if type_name:
        field.type_name = f".{_PACKAGE}.{type_name}"
    if oneof_index is not None:
        field.oneof_index = oneof_index
    return field


def _build_file_descriptor() -> _descriptor_pb2.FileDescriptorProto:
    file_proto = _descriptor_pb2.FileDescriptorProto()
    file_proto.name = "avatarlink/proto/message.proto"
    file_proto.package = _PACKAGE
    file_proto.syntax = "proto3"

    for enum_name, values in _ENUMS.items():
        enum = file_proto.enum_type.add()
        enum.name = enum_name
        for number, value_name in enumerate(values):
            value = enum.value.add()
            value.name = value_name
            value.number = number

    for msg_name, fields in _MESSAGES.items():
        msg = file_proto.message_type.add()
        msg.name = msg_name
        for number, (name, field_type, type_name) in enumerate(fields, start=1):
            _add_field(msg, name, number, field_type, type_name)

    envelope = file_proto.message_type.add()
    envelope.name = "Message"
    _add_field(envelope, "type", 1, _FIELD.TYPE_ENUM, "MessageType")
    envelope.oneof_decl.add().name = "data"
    for number, (name, type_name) in enumerate(_ENVELOPE_VARIANTS, start=2):
        _add_field(envelope, name, number, _FIELD.TYPE_MESSAGE, type_name, oneof_index=0)

    return file_proto


DESCRIPTOR = _descriptor_pool.Default().AddSerializedFile(
    _build_file_descriptor().SerializeToString()
)

_globals = globals()
_builder.BuildMessageAndEnumDescriptors(DESCRIPTOR, _globals)
_builder.BuildTopDescriptorsAndMessages(DESCRIPTOR, __name__, _globals)
