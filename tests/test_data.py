"""Tests for phenofit.data — CSV loading and model-input assembly."""

import numpy as np
import polars as pl
import pytest

from phenofit.data import build_data, load_data


def _write_csv(path, rows: list[dict]) -> None:
    pl.DataFrame(rows).write_csv(path)


def _make_rows() -> list[dict]:
    return [
        {'species': 'quercus', 'year': 1981, 'doy': 120.0},
        {'species': 'quercus', 'year': 1985, 'doy': 118.0},
        {'species': 'acer', 'year': 1980, 'doy': 101.0},
        {'species': 'acer', 'year': 1990, 'doy': 97.0},
        {'species': 'acer', 'year': 2000, 'doy': 95.0},
    ]


class TestLoadData:
    """Tests for load_data."""

    def test_counts_and_labels(self, tmp_path):
        path = tmp_path / 'obs.csv'
        _write_csv(path, _make_rows())
        data = load_data(path)

        assert data['N'] == 5
        assert data['J'] == 2
        assert data['groups'] == ['acer', 'quercus']
        np.testing.assert_array_equal(np.bincount(data['group_idx']), [3, 2])

    def test_year_offset_from_ref_year(self, tmp_path):
        path = tmp_path / 'obs.csv'
        _write_csv(path, _make_rows())
        data = load_data(path, ref_year=1980)

        acer = data['year'][data['group_idx'] == 0]
        np.testing.assert_array_equal(acer, [0.0, 10.0, 20.0])
        assert data['ref_year'] == 1980

    def test_ref_year_none_uses_earliest(self, tmp_path):
        path = tmp_path / 'obs.csv'
        rows = [dict(r, year=r['year'] + 5) for r in _make_rows()]
        _write_csv(path, rows)
        data = load_data(path, ref_year=None)

        assert data['ref_year'] == 1985
        assert data['year'].min() == 0.0

    def test_response_follows_group_index(self, tmp_path):
        """Each response stays attached to its own group after sorting."""
        path = tmp_path / 'obs.csv'
        _write_csv(path, _make_rows())
        data = load_data(path)

        quercus = data['y'][data['group_idx'] == 1]
        np.testing.assert_array_equal(quercus, [120.0, 118.0])

    def test_custom_column_names(self, tmp_path):
        path = tmp_path / 'obs.csv'
        rows = [{'taxon': r['species'], 'yr': r['year'], 'day': r['doy']} for r in _make_rows()]
        _write_csv(path, rows)
        data = load_data(path, group_col='taxon', year_col='yr', response_col='day')
        assert data['N'] == 5

    def test_drops_rows_with_missing_values(self, tmp_path):
        path = tmp_path / 'obs.csv'
        rows = _make_rows() + [{'species': 'acer', 'year': 2001, 'doy': None}]
        _write_csv(path, rows)
        data = load_data(path)
        assert data['N'] == 5

    def test_drops_r_style_na_cells(self, tmp_path):
        """Literal ``NA`` tokens in numeric columns count as missing."""
        path = tmp_path / 'obs.csv'
        path.write_text(
            'species,year,doy\n'
            'quercus,1981,120\n'
            'quercus,1985,118\n'
            'acer,1980,101\n'
            'acer,1990,NA\n'
            'acer,NA,95\n'
            'acer,2000,95\n'
        )
        data = load_data(path)
        assert data['N'] == 4
        np.testing.assert_array_equal(data['y'][data['group_idx'] == 0], [101.0, 95.0])

    def test_all_rows_missing_raises(self, tmp_path):
        path = tmp_path / 'obs.csv'
        path.write_text('species,year,doy\nacer,1990,NA\n')
        with pytest.raises(ValueError):
            load_data(path)

    def test_missing_columns_raises(self, tmp_path):
        path = tmp_path / 'obs.csv'
        _write_csv(path, [{'species': 'a', 'year': 1990}])
        with pytest.raises(ValueError, match='Missing required columns'):
            load_data(path)

    def test_missing_file_raises(self, tmp_path):
        with pytest.raises(FileNotFoundError):
            load_data(tmp_path / 'nope.csv')

    def test_arrays_are_read_only(self, tmp_path):
        path = tmp_path / 'obs.csv'
        _write_csv(path, _make_rows())
        data = load_data(path)
        with pytest.raises(ValueError):
            data['y'][0] = 0.0


class TestBuildData:
    """Tests for build_data."""

    def test_empty_frame_raises(self):
        frame = pl.DataFrame(
            {'group': [], 'year': [], 'y': []},
            schema={'group': pl.Utf8, 'year': pl.Float64, 'y': pl.Float64},
        )
        with pytest.raises(ValueError, match='empty'):
            build_data(frame)

    def test_groups_indexed_in_label_order(self):
        frame = pl.DataFrame({'group': ['b', 'a', 'b'], 'year': [0.0, 1.0, 2.0], 'y': [1.0, 2.0, 3.0]})
        data = build_data(frame)
        assert data['groups'] == ['a', 'b']
        np.testing.assert_array_equal(data['group_idx'], [0, 1, 1])
        np.testing.assert_array_equal(data['y'], [2.0, 1.0, 3.0])
