from __future__ import annotations

from .models import CycleReport, SourceReport


def format_source_line(s: SourceReport) -> str:
    if s.error:
        return f"  {s.source}: ERROR {s.error}"
    return f"  {s.source}: fetched {s.fetched}, new {s.new}, duplicates {s.duplicates}"


def format_report(report: CycleReport) -> str:
    """
    Plain-text rendering of a cycle report, e.g.:

        Search cycle finished in 12.4s
        Sources:
          remoteok: fetched 40, new 3, duplicates 37
          headhunter: ERROR SourceError('timeout')
        Totals: fetched 40, new 3, duplicates 37
        Analyzed: 3 (failed 0)
        Notified: 2

    Pure function: no I/O, no clock.
    """
    lines: list[str] = [f"Search cycle finished in {report.duration_s:.1f}s"]

    if report.sources:
        lines.append("Sources:")
        lines.extend(format_source_line(s) for s in report.sources)
    else:
        lines.append("Sources: none enabled")

    lines.append(
        f"Totals: fetched {report.total_fetched}, new {report.total_new}, duplicates {report.total_duplicates}"
    )
    lines.append(f"Analyzed: {report.analyzed} (failed {report.analysis_failed})")
    if report.quota_exhausted:
        lines.append("Scoring stopped early: language-model quota exhausted")
    lines.append(f"Notified: {report.notified}")
    return "\n".join(lines)
