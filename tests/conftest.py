import logging
from typing import Callable

import pytest

from dafang.models.board import Board
from dafang.models.game import GameState
from tests.utils.boards import build_state

logger = logging.getLogger(__name__)


@pytest.fixture
def make_state() -> Callable[..., GameState]:
    return build_state


@pytest.fixture
def make_board() -> Callable[[list[str]], Board]:
    return Board.from_rows
