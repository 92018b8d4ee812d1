import logging
from collections import namedtuple
from enum import Enum

logger = logging.getLogger(__name__)

MOVES = (
    (2, 1), (1, 2), (-1, 2), (-2, 1),
    (-2, -1), (-1, -2), (1, -2), (2, -1)
) # 八种跳法，顺序固定


class InvalidMoveError(ValueError):
    pass


class TourStatus(str, Enum):
    EMPTY = 'empty'
    IN_PROGRESS = 'in_progress'
    WON = 'won'
    STUCK = 'stuck'


StatusReport = namedtuple('StatusReport', ['status', 'visited', 'total', 'moves'])


def square_key(square): # (r, c) -> "r,c"
    return f'{square[0]},{square[1]}'


def parse_square_key(key):
    r, c = key.split(',')
    return int(r), int(c)


def within_board_check(n, r, c):
    return 0 <= r < n and 0 <= c < n


def as_square(square): # 坐标必须是两个整数
    try:
        r, c = square
    except (TypeError, ValueError):
        raise InvalidMoveError(f'无法识别的格子: {square!r}')
    if not all(isinstance(v, int) and not isinstance(v, bool) for v in (r, c)):
        raise InvalidMoveError(f'格子坐标必须是整数: {square!r}')
    return r, c


def compute_legal_moves(n, square, visited):
    """Squares reachable from ``square`` by one knight jump that are on the
    board and not yet visited, in the fixed order of ``MOVES``.

    Only one step is looked at; whether the tour can still be finished from a
    destination is not considered.
    """
    r, c = square
    moves = []
    for dr, dc in MOVES:
        nr, nc = r + dr, c + dc
        if within_board_check(n, nr, nc) and (nr, nc) not in visited:
            moves.append((nr, nc))
    return tuple(moves)


class TourState:
    """Visited set, move index and history of one tour.

    ``visit`` and ``unvisit`` are the only mutators, so the three containers
    always hold the same squares.
    """

    def __init__(self, n):
        if isinstance(n, bool) or not isinstance(n, int) or n < 1:
            raise ValueError(f'棋盘大小必须是正整数: {n!r}')
        self.n = n
        self.history = [] # 走过的格子，按顺序
        self.visited = set()
        self.move_index = {} # 格子 -> 第几步（从1开始）

    def __len__(self):
        return len(self.history)

    @property
    def current(self):
        return self.history[-1] if self.history else None

    def visit(self, square):
        self.history.append(square)
        self.visited.add(square)
        self.move_index[square] = len(self.history)

    def unvisit(self):
        square = self.history.pop()
        self.visited.discard(square)
        del self.move_index[square]
        return square


class TourEngine:
    def __init__(self, n):
        self.state = TourState(n)
        self.next_moves = () # 当前位置可走的格子

    @property
    def n(self):
        return self.state.n

    @property
    def current(self):
        return self.state.current

    @property
    def history(self):
        return list(self.state.history)

    @property
    def visited(self):
        return frozenset(self.state.visited)

    @property
    def move_index(self):
        return dict(self.state.move_index)

    def _refresh(self): # 每次改动后重新计算可走格子
        current = self.state.current
        if current is None:
            self.next_moves = ()
        else:
            self.next_moves = compute_legal_moves(self.state.n, current, self.state.visited)

    def legal_moves(self):
        return self.next_moves

    def place(self, square):
        square = as_square(square)
        if self.state.current is not None:
            raise InvalidMoveError('马已经放下，请使用 move')
        if not within_board_check(self.state.n, *square):
            raise InvalidMoveError(f'{square} 不在棋盘内')
        self.state.visit(square)
        self._refresh()
        logger.debug('place %s on %dx%d board', square, self.n, self.n)

    def move(self, square):
        square = as_square(square)
        if self.state.current is None:
            raise InvalidMoveError('还没有放置马')
        if square not in self.next_moves:
            logger.debug('rejected move %s -> %s', self.state.current, square)
            raise InvalidMoveError(f'{self.state.current} 不能跳到 {square}')
        self.state.visit(square)
        self._refresh()
        logger.debug('move #%d to %s', len(self.state), square)

    def place_or_move(self, square): # 点击棋盘：没放马就放马，否则走一步
        if self.state.current is None:
            self.place(square)
        else:
            self.move(square)

    def undo(self):
        if not self.state.history:
            return None
        square = self.state.unvisit()
        self._refresh()
        logger.debug('undo %s, %d squares left', square, len(self.state))
        return square

    def reset(self, n=None):
        # 换新的 TourState，不在旧状态上逐项清空
        self.state = TourState(self.state.n if n is None else n)
        self._refresh()
        logger.debug('reset to %dx%d board', self.n, self.n)

    def status(self):
        total = self.state.n * self.state.n
        visited = len(self.state.visited)
        if self.state.current is None:
            status = TourStatus.EMPTY
        elif visited == total:
            status = TourStatus.WON
        elif not self.next_moves:
            status = TourStatus.STUCK
        else:
            status = TourStatus.IN_PROGRESS
        return StatusReport(status, visited, total, len(self.next_moves))

    def snapshot(self):
        report = self.status()
        current = self.state.current
        return {
            'n': self.state.n,
            'current': list(current) if current is not None else None,
            'history': [list(square) for square in self.state.history],
            'move_index': {square_key(square): idx for square, idx in self.state.move_index.items()},
            'next_moves': [list(square) for square in self.next_moves],
            'status': report.status.value,
            'visited': report.visited,
            'total': report.total,
            'message': status_message(report),
        }


def status_message(report): # 棋盘下方的状态提示
    if report.status is TourStatus.EMPTY:
        return '在任意格子放下马开始游戏'
    if report.status is TourStatus.WON:
        return f'完成巡游！已走遍 {report.visited}/{report.total} 个格子'
    if report.status is TourStatus.STUCK:
        return f'无路可走，停在 {report.visited}/{report.total}，可以悔棋或重新开始'
    return f'已走 {report.visited}/{report.total}，还有 {report.moves} 种走法'
