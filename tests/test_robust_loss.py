import numpy as np
import pytest

from PoseOptimization.algorithms.optimization import HuberLoss, OutlierClassifier


def test_huber_weights_quadratic_and_linear_regime():
    huber = HuberLoss(1.5)
    np.testing.assert_allclose(huber.weights([0.0, 0.5, 1.5, 3.0, 15.0]),
                               [1.0, 1.0, 1.0, 0.5, 0.1])


def test_huber_rho_is_continuous_at_threshold():
    huber = HuberLoss(2.0)
    below, above = huber.rho([2.0 - 1e-9, 2.0 + 1e-9])
    assert below == pytest.approx(above, abs=1e-6)
    assert huber.rho([1.0])[0] == pytest.approx(1.0)
    assert huber.rho([4.0])[0] == pytest.approx(2 * 2.0 * 4.0 - 4.0)


def test_huber_cost_respects_mask():
    huber = HuberLoss(1.5)
    norms = np.array([1.0, 1.0, 100.0])
    assert huber.cost(norms) == pytest.approx(0.5 * (1.0 + 1.0 + 2 * 1.5 * 100.0 - 1.5**2))
    assert huber.cost(norms, np.array([True, True, False])) == pytest.approx(1.0)
    assert huber.cost(norms, np.zeros(3, dtype=bool)) == 0.0


def test_negative_thresholds_rejected():
    with pytest.raises(ValueError):
        HuberLoss(-1.0)
    with pytest.raises(ValueError):
        OutlierClassifier(-0.1)


def test_classifier_hard_threshold_and_depth():
    classifier = OutlierClassifier(2.5)
    mask = classifier.classify(np.array([1.0, 3.0, 2.0, 2.5]),
                               np.array([True, True, False, True]))
    assert mask.tolist() == [True, False, False, True]
    assert not classifier.last_rejection_suspended


def test_classifier_suspends_rejection_when_too_few_survive():
    classifier = OutlierClassifier(2.5, min_inlier_ratio=0.5)
    depth_valid = np.array([True, True, True, False])
    mask = classifier.classify(np.array([50.0, 80.0, 1.0, 0.0]), depth_valid)
    assert classifier.last_rejection_suspended
    assert mask.tolist() == depth_valid.tolist()


def test_classifier_independent_of_huber_ordering():
    # Rejection threshold below the Huber threshold is allowed
    classifier = OutlierClassifier(0.5, min_inlier_ratio=0.0)
    mask = classifier.classify(np.array([0.2, 1.0]), np.array([True, True]))
    assert mask.tolist() == [True, False]


def test_threshold_mask_ignores_suspension():
    classifier = OutlierClassifier(2.5, min_inlier_ratio=0.5)
    depth_valid = np.array([True, True, True, False])
    norms = np.array([50.0, 80.0, 1.0, 0.0])

    assert classifier.classify(norms, depth_valid).tolist() == depth_valid.tolist()
    assert classifier.last_rejection_suspended
    assert classifier.threshold_mask(norms, depth_valid).tolist() == [False, False, True, False]
