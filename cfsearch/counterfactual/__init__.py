"""
Counterfactual package for cfsearch.
Builds, scores and searches counterfactual candidates.
"""

from cfsearch.counterfactual.entities import CounterfactualEntity
from cfsearch.counterfactual.goal import GoalScore, GoalCriteria, FunctionGoalCriteria, DefaultGoalCriteria
from cfsearch.counterfactual.score import Score, CounterfactualScoreCalculator
from cfsearch.counterfactual.solution import CounterfactualSolution, SequenceCounter
from cfsearch.counterfactual.result import CounterfactualResult
from cfsearch.counterfactual.solver import Optimizer, LocalSearchOptimizer, SearchProblem, TerminationPolicy
from cfsearch.counterfactual.explainer import CounterfactualExplainer, CounterfactualSearch, SearchState

__all__ = [
    'CounterfactualEntity',
    'GoalScore',
    'GoalCriteria',
    'FunctionGoalCriteria',
    'DefaultGoalCriteria',
    'Score',
    'CounterfactualScoreCalculator',
    'CounterfactualSolution',
    'SequenceCounter',
    'CounterfactualResult',
    'Optimizer',
    'LocalSearchOptimizer',
    'SearchProblem',
    'TerminationPolicy',
    'CounterfactualExplainer',
    'CounterfactualSearch',
    'SearchState'
]
