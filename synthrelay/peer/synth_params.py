"""Synth parameters exchanged over the data channel."""

DEFAULT_SYNTH_PARAMS: dict[str, object] = {
    "oscillatorEnabled": True,
    "waveform": "sine",
    "frequency": 440.0,
    "volume": 0.1,
    "detune": 0,
    "attack": 0.001,
    "release": 0.1,
    "filterCutoff": 16000.0,
    "filterResonance": 0,
    "vibratoRate": 0,
    "vibratoWidth": 0,
    "portamentoTime": 0,
}

SYNTH_PARAM_NAMES = frozenset(DEFAULT_SYNTH_PARAMS)

# Replayed first so a pending note starts before the other parameters land
OSCILLATOR_ENABLED = "oscillatorEnabled"


def ordered_state(params: dict[str, object]) -> list[tuple[str, object]]:
    """
    Parameters in replay order: `oscillatorEnabled` first when it is on,
    then every other parameter.
    """
    ordered: list[tuple[str, object]] = []
    if params.get(OSCILLATOR_ENABLED):
        ordered.append((OSCILLATOR_ENABLED, params[OSCILLATOR_ENABLED]))

    for param, value in params.items():
        if param != OSCILLATOR_ENABLED:
            ordered.append((param, value))
    return ordered
