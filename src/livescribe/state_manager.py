"""
Recording state for a capture session.

Tracks whether the session is idle, recording or flushing its last window,
and notifies registered callbacks on every transition.
"""

from enum import Enum
from typing import Optional, Callable
from dataclasses import dataclass
from datetime import datetime
import logging
import threading

from .utils.logger import null_logger


class AppState(Enum):
    """Session states"""
    IDLE = "idle"
    RECORDING = "recording"  # sources running, windows being transcribed
    FLUSHING = "flushing"  # capture stopped, transcribing the remaining tail
    ERROR = "error"  # last start attempt failed


@dataclass
class StateData:
    """Data associated with current state"""
    state: AppState
    timestamp: datetime
    error: Optional[str] = None
    metadata: Optional[dict] = None


class StateManager:
    """
    Thread-safe state holder with transition validation.

    Callbacks run synchronously inside transition_to; keep them short.
    """

    VALID_TRANSITIONS = {
        AppState.IDLE: [AppState.RECORDING, AppState.ERROR],
        AppState.RECORDING: [AppState.FLUSHING, AppState.ERROR],
        AppState.FLUSHING: [AppState.IDLE, AppState.RECORDING, AppState.ERROR],
        AppState.ERROR: [AppState.IDLE, AppState.RECORDING, AppState.ERROR],
    }

    def __init__(self, logger: Optional[logging.Logger] = None):
        self.logger = logger or null_logger()
        self._current_state = AppState.IDLE
        self._state_data = StateData(
            state=AppState.IDLE,
            timestamp=datetime.now()
        )
        self._lock = threading.RLock()
        self._callbacks = {state: [] for state in AppState}
        self._global_callbacks = []

    @property
    def current_state(self) -> AppState:
        with self._lock:
            return self._current_state

    @property
    def state_data(self) -> StateData:
        with self._lock:
            return self._state_data

    def transition_to(self, new_state: AppState, **kwargs) -> bool:
        """
        Move to new_state if the transition is allowed.

        Args:
            new_state: Target state
            **kwargs: error / metadata for the new state

        Returns:
            bool: True if the transition happened
        """
        with self._lock:
            if new_state not in self.VALID_TRANSITIONS.get(self._current_state, []):
                self.logger.warning(
                    f"Invalid transition from {self._current_state.value} "
                    f"to {new_state.value}"
                )
                return False

            old_state = self._current_state
            self._current_state = new_state
            self._state_data = StateData(
                state=new_state,
                timestamp=datetime.now(),
                error=kwargs.get('error'),
                metadata=kwargs.get('metadata')
            )

            self.logger.info(f"State transition: {old_state.value} -> {new_state.value}")
            self._execute_callbacks(new_state, old_state)
            return True

    def register_callback(
        self,
        state: Optional[AppState],
        callback: Callable[[StateData, AppState], None]
    ):
        """
        Register a callback for state changes.

        Args:
            state: Specific state to listen for, or None for all states
            callback: Called with (state_data, old_state)
        """
        with self._lock:
            if state is None:
                self._global_callbacks.append(callback)
            else:
                self._callbacks[state].append(callback)

    def _execute_callbacks(self, new_state: AppState, old_state: AppState):
        for callback in self._callbacks[new_state] + self._global_callbacks:
            try:
                callback(self._state_data, old_state)
            except Exception as e:
                self.logger.error(f"Error in state callback: {e}")

    def handle_error(self, error: str):
        self.transition_to(AppState.ERROR, error=error)

    def get_state_info(self) -> dict:
        with self._lock:
            return {
                'state': self._current_state.value,
                'timestamp': self._state_data.timestamp.isoformat(),
                'error': self._state_data.error,
                'metadata': self._state_data.metadata
            }
