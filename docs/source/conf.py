# Sphinx configuration for the buffon-needle docs.
from __future__ import annotations

import os
import sys
from datetime import datetime

sys.path.insert(0, os.path.abspath("../../src"))

project = "buffon-needle"
author = "buffon-needle contributors"
copyright = f"{datetime.now():%Y}, {author}"

extensions = [
    "sphinx.ext.autodoc",
    "sphinx.ext.autosummary",
    "sphinx.ext.intersphinx",
    "sphinx.ext.mathjax",
    "sphinx.ext.viewcode",
    "sphinx.ext.doctest",
    "numpydoc",
    "myst_parser",
    "sphinx_copybutton",
    "sphinx_design",
]

nitpicky = True
nitpick_ignore = [
    ("py:mod", "buffon"),
    ("py:class", "buffon.core.RandomSource"),
    ("py:class", "buffon.scheduler.FrameRequester"),
    ("py:class", "FrameCallback"),
    ("py:class", "Hashable"),
]
nitpick_ignore_regex = [
    (r"py:attr", r"buffon\.(core|snapshot)\.\w+\.\w+"),
    (r"py:attr", r"^(rng|params|rate|state|history|ring)$"),
]

exclude_patterns = ["_build"]

html_theme = "pydata_sphinx_theme"
html_theme_options = {"show_prev_next": False, "navigation_depth": 2}

autosummary_generate = True
autodoc_member_order = "bysource"
autodoc_typehints = "signature"
autoclass_content = "class"
autodoc_default_options = {"members": True, "show-inheritance": True}

numpydoc_show_class_members = False
numpydoc_xref_param_type = True
numpydoc_xref_ignore = {"of", "or", "default", "optional", "callable", "mapping"}
numpydoc_xref_aliases = {
    name: f"buffon.{module}.{name}"
    for module, names in {
        "core": [
            "SimulationConfig", "SimulationParameters", "TrialOutcome", "NeedleSample",
            "EstimatorState", "HistoryPoint", "RandomSource",
            "InvalidParameter", "DecodeError", "EmptyHistoryError",
        ],
        "estimator": ["RunningEstimator"],
        "buffers": ["NeedleRing", "HistorySeries"],
        "scheduler": ["TrialScheduler", "SchedulerState", "FrameRequester", "ManualFrameLoop"],
        "snapshot": ["Snapshot", "RestoredState"],
        "export": ["HistoryRow"],
        "simulation": ["NeedleSimulation", "TickResult", "EstimateReading"],
    }.items()
    for name in names
}
numpydoc_xref_aliases.update({
    "ndarray": "numpy.ndarray",
    "Generator": "numpy.random.Generator",
    "SeedSequence": "numpy.random.SeedSequence",
})

myst_enable_extensions = ["dollarmath", "amsmath"]
mathjax3_config = {"tex": {"macros": {"pihat": r"\hat{\pi}"}}}

intersphinx_mapping = {
    "python": ("https://docs.python.org/3", None),
    "numpy": ("https://numpy.org/doc/stable/", None),
    "matplotlib": ("https://matplotlib.org/stable/", None),
}

copybutton_prompt_text = r">>> |\.\.\. |\$ "
copybutton_prompt_is_regexp = True
