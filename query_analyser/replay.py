"""
Replay scripts

Writes one <number>.cli file per select/update/delete query so the bound
statement can be replayed by a workload driver.
"""
import logging
from pathlib import Path
from typing import List, Optional, Sequence, Union

logger = logging.getLogger(__name__)

# query id prefix -> (multiplier of the scale, closing command)
REPLAY_KINDS = {
    'query.select.': (2, 'COMMIT'),
    'query.update.': (3, 'ROLLBACK'),
    'query.delete.': (1, 'ROLLBACK'),
}


def _replay_kind(query_id: str):
    for prefix, kind in REPLAY_KINDS.items():
        if query_id.startswith(prefix):
            return prefix, kind
    return None, None


def replay_number(query_id: str) -> Optional[int]:
    """
    Script number of a query id such as 'query.select.001'

    Leading zeros are stripped one at a time; the scale starts at 100 and
    grows tenfold for each further zero found after a strip. Select adds 2x,
    update 3x and delete 1x the scale.

    Returns:
        The number, or None for ids that get no replay script
    """
    prefix, kind = _replay_kind(query_id)
    if prefix is None:
        return None

    digits = query_id[len(prefix):]
    if not digits.isdigit():
        return None

    scale = 100
    while digits.startswith('0'):
        digits = digits[1:]
        if digits.startswith('0'):
            scale *= 10

    value = int(digits) if digits else 0
    return value + kind[0] * scale


def _strip_quotes(value: str) -> str:
    if len(value) >= 2 and value.startswith("'") and value.endswith("'"):
        return value[1:-1]
    return value


def build_replay_script(
    query_id: str,
    query: str,
    parameter_types: Sequence[int],
    parameter_values: Sequence[str]
) -> List[str]:
    """
    Lines of a replay script

    Args:
        query_id: Query identifier
        query: Statement as written in the corpus
        parameter_types: Bound parameter type codes
        parameter_values: Bound parameter literals

    Returns:
        Script lines, without line terminators
    """
    _, kind = _replay_kind(query_id)
    closing = kind[1] if kind else 'ROLLBACK'

    lines = ['#', f'# {query_id}', '#']
    lines += ['P', 'BEGIN', '', '']
    lines += ['P', query]
    if parameter_types:
        lines.append('|'.join(str(int(t)) for t in parameter_types))
        lines.append('|'.join(_strip_quotes(v) for v in parameter_values))
    else:
        lines += ['', '']
    lines += ['P', closing, '', '']
    return lines


def write_replay_script(
    directory: Union[str, Path],
    query_id: str,
    query: str,
    parameter_types: Sequence[int],
    parameter_values: Sequence[str]
) -> Optional[Path]:
    """
    Write <number>.cli for a query

    Returns:
        Path of the written file, None when the query id gets no script
    """
    number = replay_number(query_id)
    if number is None:
        return None

    path = Path(directory) / f"{number}.cli"
    path.parent.mkdir(parents=True, exist_ok=True)
    lines = build_replay_script(query_id, query, parameter_types, parameter_values)
    path.write_text(''.join(line + '\n' for line in lines), encoding='utf-8')
    logger.debug("Wrote replay script %s for %s", path, query_id)
    return path
