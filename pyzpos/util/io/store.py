"""
HDF5 persistence of :class:`~pyzpos.correlations.store.CorrelationsStore`.

Layout::

    /sections/<index>     float64 (X, Y, W) correlation volume
        attrs: z_coordinate_min, z_coordinate_max
"""

import os
from pathlib import Path
from typing import Union

import h5py
import numpy as np

from pyzpos.correlations.meta import Meta
from pyzpos.correlations.store import CorrelationsStore

SECTIONS_GROUP = 'sections'


def save_store(file_path: Union[str, Path], store: CorrelationsStore) -> Path:
    """Write every section volume and window of ``store`` to an HDF5 file."""
    path = Path(file_path)
    path.parent.mkdir(parents=True, exist_ok=True)
    tmp_path = path.with_suffix(path.suffix + '.tmp')
    if tmp_path.exists():
        os.remove(tmp_path)

    with h5py.File(str(tmp_path), 'w') as h5file:
        group = h5file.create_group(SECTIONS_GROUP)
        for index in store.indices:
            meta = store.get_meta(index)
            ds = group.create_dataset(str(index), data=store.get_correlations(index))
            ds.attrs['z_coordinate_min'] = meta.z_coordinate_min
            ds.attrs['z_coordinate_max'] = meta.z_coordinate_max

    tmp_path.replace(path)
    return path


def load_store(file_path: Union[str, Path]) -> CorrelationsStore:
    """Read a store written by :func:`save_store`."""
    path = Path(file_path)
    if not path.exists():
        raise FileNotFoundError(f"Correlations file not found: {path}")

    store = CorrelationsStore()
    with h5py.File(str(path), 'r') as h5file:
        if SECTIONS_GROUP not in h5file:
            raise IOError(f"'{path}' has no '{SECTIONS_GROUP}' group")
        for name, ds in h5file[SECTIONS_GROUP].items():
            meta = Meta(
                z_coordinate_min=int(ds.attrs['z_coordinate_min']),
                z_coordinate_max=int(ds.attrs['z_coordinate_max']),
            )
            store.add_correlation(int(name), np.asarray(ds[()]), meta)
    return store
