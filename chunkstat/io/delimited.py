#!filepath: chunkstat/io/delimited.py
from __future__ import annotations

from pathlib import Path
from typing import Any, Mapping, Optional, Sequence

import numpy as np
import pandas as pd
import pyarrow as pa
import pyarrow.csv as pv
from pandas.api.types import is_numeric_dtype

from chunkstat.storage.container import ContainerHandle, ContainerStore
from chunkstat.utils.errors import InvalidArgument
from chunkstat.utils.logger import logs

DELIMITERS = {"csv": ",", "tsv": "\t", "delimited": ","}
DEFAULT_BLOCK_SIZE = 1 << 20


def _is_numeric(t: pa.DataType) -> bool:
    return pa.types.is_integer(t) or pa.types.is_floating(t) or pa.types.is_boolean(t)


def _read_options(block_size: int) -> pv.ReadOptions:
    return pv.ReadOptions(block_size=block_size)


def _batch_to_numpy(batch: pa.RecordBatch, dtype: np.dtype) -> np.ndarray:
    cols = []
    for name, col in zip(batch.schema.names, batch.columns):
        if col.null_count:
            raise InvalidArgument(f"column {name!r} has {col.null_count} missing values")
        cols.append(col.to_numpy(zero_copy_only=False).astype(dtype, copy=False))
    return np.column_stack(cols) if cols else np.empty((batch.num_rows, 0), dtype=dtype)


def open_delimited(
    store: ContainerStore,
    path: str | Path,
    format: str = "csv",
    dtype_hints: Optional[Mapping[str, Any]] = None,
    *,
    delimiter: Optional[str] = None,
    dtype: Any = None,
    block_size: int = DEFAULT_BLOCK_SIZE,
) -> ContainerHandle:
    """
    Import a delimited text file into a new (rows x cols) container.

    Two streaming passes through pyarrow's incremental CSV reader:
      1) count rows + pin the column types
      2) convert each record batch and write it at its row offset
    The file is never held in memory as a whole.

    dtype_hints : {column: dtype} forced at parse time
    dtype       : container element type; default is the common type of
                  all columns (int columns only → int64, else float64)
    """
    fmt = format.lower()
    if fmt not in DELIMITERS:
        raise InvalidArgument(f"unsupported format {format!r}; expected one of {sorted(DELIMITERS)}")

    path = Path(path)
    if not path.exists():
        raise FileNotFoundError(f"input file not found: {path}")

    parse = pv.ParseOptions(delimiter=delimiter or DELIMITERS[fmt])
    column_types = {
        name: pa.from_numpy_dtype(np.dtype(t)) for name, t in (dtype_hints or {}).items()
    }

    # ---------- pass 1: schema + row count ----------
    rows = 0
    try:
        reader = pv.open_csv(
            path,
            read_options=_read_options(block_size),
            parse_options=parse,
            convert_options=pv.ConvertOptions(column_types=column_types),
        )
        schema = reader.schema
        for batch in reader:
            rows += batch.num_rows
    except pa.ArrowInvalid as e:
        raise InvalidArgument(f"cannot parse {path.name}: {e}") from e

    bad = [f.name for f in schema if not _is_numeric(f.type)]
    if bad:
        raise InvalidArgument(f"non-numeric columns are not supported: {bad}")

    if dtype is None:
        dtype = np.result_type(*[f.type.to_pandas_dtype() for f in schema])
        if dtype.kind == "b":
            dtype = np.dtype(np.int64)

    handle = store.create((rows, len(schema.names)), dtype, columns=schema.names)
    logs.info(f"[open] {path.name}: {rows} rows x {len(schema.names)} cols → identity={handle.identity}")

    # ---------- pass 2: convert + write ----------
    pinned = {f.name: f.type for f in schema}
    offset = 0
    try:
        reader = pv.open_csv(
            path,
            read_options=_read_options(block_size),
            parse_options=parse,
            convert_options=pv.ConvertOptions(column_types=pinned),
        )
        for batch in reader:
            if batch.num_rows == 0:
                continue
            block = _batch_to_numpy(batch, handle.dtype)
            store.write_chunk(handle, (offset, offset + batch.num_rows), block)
            offset += batch.num_rows
    except BaseException:
        store.release(handle)
        raise

    return handle


def from_array(
    store: ContainerStore,
    array: Any,
    *,
    columns: Optional[Sequence[str]] = None,
    chunk_rows: int = 65_536,
) -> ContainerHandle:
    """Copy an in-memory 1-D / 2-D array into a new container, chunk by chunk."""
    arr = np.asarray(array)
    handle = store.create(arr.shape, arr.dtype, columns=columns)
    for start in range(0, arr.shape[0], chunk_rows):
        end = min(start + chunk_rows, arr.shape[0])
        store.write_chunk(handle, (start, end), arr[start:end])
    return handle


def from_frame(
    store: ContainerStore,
    df: pd.DataFrame,
    *,
    dtype: Any = None,
    chunk_rows: int = 65_536,
) -> ContainerHandle:
    """Import a numeric DataFrame; column names carry over to the container."""
    bad = [c for c in df.columns if not is_numeric_dtype(df[c])]
    if bad:
        raise InvalidArgument(f"non-numeric columns are not supported: {bad}")
    if df.isna().to_numpy().any():
        raise InvalidArgument("DataFrame contains missing values")

    if dtype is None:
        dtype = np.result_type(*df.dtypes.tolist()) if len(df.columns) else np.float64

    handle = store.create((len(df), len(df.columns)), dtype, columns=[str(c) for c in df.columns])
    for start in range(0, len(df), chunk_rows):
        end = min(start + chunk_rows, len(df))
        store.write_chunk(handle, (start, end), df.iloc[start:end].to_numpy(dtype=handle.dtype))
    return handle
