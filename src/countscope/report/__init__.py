"""Gene-level reports keyed by the covariates encoded in sample IDs."""

from countscope.report.genes import GeneReportBuilder, DEFAULT_ID_FIELDS

__all__ = ['GeneReportBuilder', 'DEFAULT_ID_FIELDS']
