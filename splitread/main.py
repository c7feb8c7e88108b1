import argparse
from pathlib import Path

from prefect import flow
from prefect.logging import get_run_logger

from splitread.cache import asset_from_local_path, materialize
from splitread.codecs import build_lzo_index, codec_for_path
from splitread.codecs.lzop import LzopCodec, index_path_for
from splitread.config import CachePathsConfig, ReaderConfig, WriterConfig
from splitread.decoders import DECODERS, DecoderSpec
from splitread.parquet import WriterResult, extract_records


def _default_out_dir(input_path: Path, cache_paths: CachePathsConfig) -> Path:
    return cache_paths.cache_root / input_path.name / "records_parquet"


@flow
def index_file(input_path: Path) -> Path:
    """Write the ``.index`` sidecar listing every lzo block offset."""
    logger = get_run_logger()
    if not isinstance(codec_for_path(input_path), LzopCodec):
        msg = f"Only lzop files carry a block index sidecar: {input_path}"
        raise ValueError(msg)

    build = materialize(
        asset_from_local_path(index_path_for(input_path)),
        asset_deps=[asset_from_local_path(input_path)],
    )(build_lzo_index)
    out = build(input_path)
    logger.info("Block index for %s at %s", input_path, out)
    return out


@flow
def extract_file(
    input_path: Path,
    out_dir: Path | None = None,
    decoder: DecoderSpec | None = None,
    workers: int | None = None,
) -> list[WriterResult]:
    logger = get_run_logger()
    if out_dir is None:
        out_dir = _default_out_dir(input_path, CachePathsConfig())
    config = WriterConfig(
        workers=workers,
        reader=ReaderConfig(decoder=decoder or DecoderSpec()),
    )

    run_extraction = materialize(
        asset_from_local_path(out_dir),
        asset_deps=[asset_from_local_path(input_path)],
        retries=2,
        retry_delay_seconds=[2, 10],
    )(extract_records)
    results = run_extraction(
        input_path=input_path,
        parquet_out_dir=out_dir,
        config=config,
    )

    logger.info(
        "Extracted %d records (%d malformed lines) from %s into %s",
        sum(r.n_emitted for r in results),
        sum(r.n_malformed for r in results),
        input_path,
        out_dir,
    )
    return results


def _parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        prog="splitread",
        description="Read block-compressed line files split by split.",
    )
    sub = parser.add_subparsers(dest="command", required=True)

    idx = sub.add_parser("index", help="build the block index of an lzop file")
    idx.add_argument("input", type=Path)

    ext = sub.add_parser("extract", help="decode every record into parquet parts")
    ext.add_argument("input", type=Path)
    ext.add_argument("--out-dir", type=Path, default=None)
    ext.add_argument("--decoder", default="json", choices=sorted(DECODERS))
    ext.add_argument("--fields", default=None, help="comma-separated column names")
    ext.add_argument("--delimiter", default=None)
    ext.add_argument("--workers", type=int, default=None)
    args = parser.parse_args(argv)

    if args.command == "extract":
        if args.decoder == "delimited" and not args.fields:
            parser.error("--decoder delimited requires --fields")
        if args.decoder != "delimited" and (args.fields or args.delimiter):
            parser.error("--fields and --delimiter only apply to --decoder delimited")
    return args


def _decoder_spec(args: argparse.Namespace) -> DecoderSpec:
    if args.decoder != "delimited":
        return DecoderSpec(name=args.decoder)
    options: dict[str, object] = {"field_names": args.fields.split(",")}
    if args.delimiter:
        options["delimiter"] = args.delimiter
    return DecoderSpec(name=args.decoder, options=options)


def main(argv: list[str] | None = None) -> None:
    args = _parse_args(argv)
    if args.command == "index":
        index_file(args.input)
    else:
        extract_file(
            args.input,
            out_dir=args.out_dir,
            decoder=_decoder_spec(args),
            workers=args.workers,
        )


if __name__ == "__main__":
    main()
