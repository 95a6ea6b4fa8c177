# Ingestion Pipeline Steps
# Lazy imports: importing one stage does not load the others

_LAZY_IMPORTS = {
    # source_parser.py
    "CandidateRecord": "bizreg.worker.pipelines.source_parser",
    "ParsedSource": "bizreg.worker.pipelines.source_parser",
    "parse_domestic_csv": "bizreg.worker.pipelines.source_parser",
    "parse_overseas_workbook": "bizreg.worker.pipelines.source_parser",
    "split_delimited_line": "bizreg.worker.pipelines.source_parser",
    # enrichment.py
    "EnrichmentOrchestrator": "bizreg.worker.pipelines.enrichment",
    "EnrichmentOutcome": "bizreg.worker.pipelines.enrichment",
    # persistence.py
    "PersistenceCoordinator": "bizreg.worker.pipelines.persistence",
    "PersistenceOutcome": "bizreg.worker.pipelines.persistence",
    # report.py
    "FailureHistogram": "bizreg.worker.pipelines.report",
    "FailureReason": "bizreg.worker.pipelines.report",
    "RunReport": "bizreg.worker.pipelines.report",
    # ingestion.py
    "DomesticIngestionPipeline": "bizreg.worker.pipelines.ingestion",
    "OverseasIngestionPipeline": "bizreg.worker.pipelines.ingestion",
}


def __getattr__(name):
    """Lazy import of pipeline classes."""
    if name in _LAZY_IMPORTS:
        import importlib
        module = importlib.import_module(_LAZY_IMPORTS[name])
        return getattr(module, name)
    raise AttributeError(f"module {__name__!r} has no attribute {name!r}")


__all__ = list(_LAZY_IMPORTS)
