"""
Reading and writing of section stacks and similarity matrices.

Supported formats are selected by file extension: TIFF (``.tif``/``.tiff``),
HDF5 (``.h5``/``.hdf5``/``.hdf``) and NumPy (``.npy``). A directory is read
as a sorted sequence of single-section TIFF files.
"""

import os
from pathlib import Path
from typing import Optional, Union

import h5py
import numpy as np
import tifffile

from pyzpos.util.image_processing import normalize_matrix

PathLike = Union[str, Path]


def _read_tiff(path: Path, dataset_name: Optional[str] = None) -> np.ndarray:
    return tifffile.imread(str(path))


def _read_npy(path: Path, dataset_name: Optional[str] = None) -> np.ndarray:
    return np.load(str(path))


def _read_hdf5(path: Path, dataset_name: Optional[str] = None) -> np.ndarray:
    try:
        h5file = h5py.File(str(path), 'r')
    except Exception as e:
        raise IOError(f"Could not open HDF5 file: {path}. Error: {e}")

    with h5file:
        if dataset_name is None:
            names = []

            def visitor_func(name, obj):
                if isinstance(obj, h5py.Dataset):
                    names.append(name)

            h5file.visititems(visitor_func)
            if not names:
                raise IOError(f"Could not find any datasets in '{path}'.")
            dataset_name = names[0]
        return h5file[dataset_name][()]


def _read_directory(path: Path, dataset_name: Optional[str] = None) -> np.ndarray:
    files = sorted(
        p for p in path.iterdir() if p.suffix.lower() in {'.tif', '.tiff'}
    )
    if not files:
        raise ValueError(f"No TIFF sections found in directory {path}")
    return np.stack([tifffile.imread(str(f)) for f in files], axis=0)


_READERS = {
    '.tif': _read_tiff,
    '.tiff': _read_tiff,
    '.npy': _read_npy,
    '.h5': _read_hdf5,
    '.hdf5': _read_hdf5,
    '.hdf': _read_hdf5,
}


def read_array(file_path: PathLike, dataset_name: Optional[str] = None) -> np.ndarray:
    """
    Read an array from a file or a directory of sections.

    Args:
        file_path: Path to a TIFF/HDF5/NPY file or a directory of TIFF files
        dataset_name: HDF5 dataset to read, defaults to the first dataset

    Returns:
        The stored array
    """
    path = Path(file_path)
    if not path.exists():
        raise FileNotFoundError(f"File not found: {path}")
    if path.is_dir():
        return _read_directory(path)

    reader = _READERS.get(path.suffix.lower())
    if reader is None:
        raise ValueError(f"Unsupported file format: {path.suffix}")
    return reader(path, dataset_name)


def read_stack(file_path: PathLike, dataset_name: Optional[str] = None) -> np.ndarray:
    """Read a (Z, X, Y) stack as float32."""
    stack = read_array(file_path, dataset_name)
    if stack.ndim == 2:
        stack = stack[np.newaxis]
    if stack.ndim != 3:
        raise ValueError(f"Expected a 3D stack, got {stack.ndim}D from {file_path}")
    return stack.astype(np.float32, copy=False)


def read_matrix(
    file_path: PathLike,
    normalize: bool = True,
    dataset_name: Optional[str] = None
) -> np.ndarray:
    """
    Read a square similarity matrix.

    Args:
        file_path: Matrix file
        normalize: Divide by the largest finite entry
        dataset_name: HDF5 dataset to read

    Returns:
        Float64 matrix
    """
    matrix = np.squeeze(read_array(file_path, dataset_name))
    if matrix.ndim != 2 or matrix.shape[0] != matrix.shape[1]:
        raise ValueError(f"Expected a square matrix, got shape {matrix.shape}")
    if normalize:
        return normalize_matrix(matrix)
    return matrix.astype(np.float64, copy=False)


def write_array(file_path: PathLike, array: np.ndarray, dataset_name: str = 'data') -> Path:
    """
    Write an array; the format follows the file extension.

    Existing files are replaced.
    """
    path = Path(file_path)
    ext = path.suffix.lower()
    path.parent.mkdir(parents=True, exist_ok=True)

    if ext in {'.tif', '.tiff'}:
        array = np.asarray(array)
        if array.dtype == np.float64:
            array = array.astype(np.float32)
        tifffile.imwrite(str(path), array)
    elif ext == '.npy':
        np.save(str(path), array)
    elif ext in {'.h5', '.hdf5', '.hdf'}:
        if path.exists():
            os.remove(path)
        with h5py.File(str(path), 'w') as h5file:
            h5file.create_dataset(dataset_name, data=array)
    else:
        raise ValueError(f"Unsupported file format: {ext}")
    return path


write_stack = write_array
