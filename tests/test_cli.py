"""
Tests for the command line interface.
"""

import pytest

from vector_import import parse_args


@pytest.mark.parametrize('flags, expected', [
    ([], None),
    (['--interleaved'], True),
    (['--no-interleaved'], False),
])
def test_reading_mode_flag(flags, expected):
    assert parse_args(['parcels.gpkg', *flags]).interleaved is expected


def test_unset_options_do_not_override_settings():
    args = vars(parse_args(['parcels.gpkg']))
    assert args.pop('input') == 'parcels.gpkg'
    assert all(value is None for value in args.values())


def test_import_options():
    args = parse_args(['parcels.gpkg', '-o', 'parcels', '--layer', 'a', '--layer', 'b',
                       '--spatial', '0', '0', '10', '5', '--snap', '1e-7',
                       '--type', 'point', '--no-clean'])
    assert args.output_name == 'parcels'
    assert args.layers == ['a', 'b']
    assert args.spatial == [0.0, 0.0, 10.0, 5.0]
    assert args.snap == 1e-7
    assert args.type_overrides == ['point']
    assert args.no_clean is True


def test_unknown_type_override_is_rejected():
    with pytest.raises(SystemExit):
        parse_args(['parcels.gpkg', '--type', 'polygon'])
