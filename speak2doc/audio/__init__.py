"""Audio capture, voice activity and PCM framing."""

from .vad import VolumeGate, GateDecision, compute_volume
from .wav import encode_wav, float_to_pcm16, concatenate_frames

__all__ = [
    'VolumeGate',
    'GateDecision',
    'compute_volume',
    'encode_wav',
    'float_to_pcm16',
    'concatenate_frames',
]
