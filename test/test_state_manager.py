from livescribe.state_manager import AppState, StateManager


def test_starts_idle():
    manager = StateManager()
    assert manager.current_state == AppState.IDLE
    assert manager.get_state_info()['state'] == "idle"


def test_recording_cycle():
    manager = StateManager()

    assert manager.transition_to(AppState.RECORDING, metadata={'devices': ["a"]})
    assert manager.state_data.metadata == {'devices': ["a"]}
    assert manager.transition_to(AppState.FLUSHING)
    assert manager.transition_to(AppState.IDLE)


def test_invalid_transition_is_refused():
    manager = StateManager()

    assert not manager.transition_to(AppState.FLUSHING)
    assert manager.current_state == AppState.IDLE


def test_error_then_recover():
    manager = StateManager()
    manager.handle_error("parec not found")

    assert manager.current_state == AppState.ERROR
    assert manager.get_state_info()['error'] == "parec not found"
    assert manager.transition_to(AppState.RECORDING)


def test_callbacks():
    manager = StateManager()
    seen, recording = [], []
    manager.register_callback(None, lambda data, old: seen.append((old, data.state)))
    manager.register_callback(AppState.RECORDING, lambda data, old: recording.append(old))

    manager.transition_to(AppState.RECORDING)
    manager.transition_to(AppState.FLUSHING)

    assert seen == [(AppState.IDLE, AppState.RECORDING), (AppState.RECORDING, AppState.FLUSHING)]
    assert recording == [AppState.IDLE]


def test_failing_callback_does_not_block_transition():
    manager = StateManager()

    def broken(data, old):
        raise RuntimeError("boom")

    manager.register_callback(None, broken)
    assert manager.transition_to(AppState.RECORDING)
    assert manager.current_state == AppState.RECORDING
