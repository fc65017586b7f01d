from __future__ import annotations

from dataclasses import dataclass

from cutoff.client.audio_context import AudioBuffer, AudioContext
from cutoff.client.nodes import AnalyserNode, AudioBufferSourceNode, AudioNode, BiquadFilterNode, GainNode


@dataclass(frozen=True)
class ChannelStrip:
    filter: BiquadFilterNode
    gain: GainNode


@dataclass(frozen=True)
class FilteredChain:
    source: AudioBufferSourceNode
    analyser: AnalyserNode


@dataclass(frozen=True)
class FlatChain:
    source: AudioBufferSourceNode
    gain: GainNode


def create_channel_strip(context: AudioContext, cutoff_frequency: float) -> ChannelStrip:
    filter_node = context.create_biquad_filter()
    filter_node.frequency.value = cutoff_frequency
    gain = context.create_gain()
    gain.gain.value = 1.0
    return ChannelStrip(filter=filter_node, gain=gain)


def _looping_source(context: AudioContext, buffer: AudioBuffer) -> AudioBufferSourceNode:
    source = context.create_buffer_source()
    source.buffer = buffer
    source.loop = True
    return source


def build_filtered_chain(
    context: AudioContext,
    buffer: AudioBuffer,
    filter_node: BiquadFilterNode,
    gain: GainNode,
    *,
    fft_size: int | None = None,
) -> FilteredChain:
    """source -> filter -> analyser -> gain -> destination. A fresh analyser per call."""
    source = _looping_source(context, buffer)
    analyser = context.create_analyser(fft_size)

    # drop whatever analyser the filter fed during the previous play
    filter_node.disconnect()

    source.connect(filter_node)
    filter_node.connect(analyser)
    analyser.connect(gain)
    gain.connect(context.destination)
    return FilteredChain(source=source, analyser=analyser)


def build_flat_chain(context: AudioContext, buffer: AudioBuffer) -> FlatChain:
    """source -> gain -> destination, silent at the current time. The filter is bypassed."""
    source = _looping_source(context, buffer)
    gain = context.create_gain()
    gain.gain.set_value_at_time(0.0, context.current_time)
    source.connect(gain)
    gain.connect(context.destination)
    return FlatChain(source=source, gain=gain)


def release(*nodes: AudioNode | None) -> None:
    for node in nodes:
        if node is not None:
            node.disconnect()
