from .assembly import assemble_analysis_table, study_start
from .regression import fit_linear_mixed, fit_ordinal, parse_formula
from .report import PipelineReport
