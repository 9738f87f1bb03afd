"""
pulse_pipeline.pipelines — Run-level steps that follow the fetchers.

    manifest   — scans public/data and writes manifest.json + per-source metadata
    fetch_all  — the orchestrator: fetchers, manifest, validation report, run summary

    from pulse_pipeline.pipelines.fetch_all import run_all

    summary = run_all()
"""
