"""
Example column set for demos and tests.

Builds a small infant reaching study: a primary coder's trial and reach
columns plus a reliability coder's pass over every second trial.
"""
from codesheet.model import Column
from codesheet.project import ColumnSet, ProjectMetadata

# (onset, offset, trialnum, condition)
TRIALS = [
    (0, 9999, "1", "toy"),
    (10000, 19999, "2", "food"),
    (20000, 29999, "3", "toy"),
    (30000, 39999, "4", "food"),
]

# (onset, offset, hand, grasp)
REACHES = [
    (1200, 2400, "l", "y"),
    (11500, 12100, "r", "n"),
    (13000, 14800, "b", "y"),
    (22000, 22900, "r", "y"),
    (31000, 33000, "l", "n"),
]


def build_example_trials(name: str = "trial") -> Column:
    trial = Column(name=name, code_schema=["trialnum", "condition"])
    for onset, offset, trialnum, condition in TRIALS:
        trial.add_cell(onset, offset, trialnum=trialnum, condition=condition)
    return trial


def build_example_reaches(name: str = "reach") -> Column:
    reach = Column(name=name, code_schema=["hand", "grasp"])
    for onset, offset, hand, grasp in REACHES:
        reach.add_cell(onset, offset, hand=hand, grasp=grasp)
    return reach


def build_example_project(rel_disagreements: bool = True):
    """
    Build the example column set.

    The reliability columns copy trials 2 and 4 and the reaches inside
    them. With `rel_disagreements`, the reliability coder records trial 4's
    condition and the first reach's hand differently and shifts one reach
    onset by 150 ms.

    Returns:
        (ColumnSet, ProjectMetadata)
    """
    trial = build_example_trials()
    reach = build_example_reaches()

    trial_rel = Column(name="trial_rel", code_schema=["trialnum", "condition"])
    for cell in trial.cells:
        if cell.ordinal % 2 == 0:
            trial_rel.new_cell(template=cell)

    reach_rel = Column(name="reach_rel", code_schema=["hand", "grasp"])
    for cell in reach.cells:
        if any(t.contains(cell) for t in trial_rel.cells):
            reach_rel.new_cell(template=cell)

    if rel_disagreements:
        trial_rel.cells[1].set_code("condition", "toy")
        reach_rel.cells[0].set_code("hand", "l")
        reach_rel.cells[1].onset = reach_rel.cells[1].onset + 150

    project = ColumnSet([trial, reach, trial_rel, reach_rel])
    metadata = ProjectMetadata(name="reaching_study", attributes={"coder": "primary"})
    return project, metadata
