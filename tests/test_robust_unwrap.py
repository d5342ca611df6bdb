import math
import unittest

import numpy as np
import torch

from robustunwrap import RobustUnwrapConfig
from robustunwrap.errors import QueueOverflowError, SeedOutOfBoundsError
from robustunwrap.phase_unwrapping import (
    GridGeometry,
    RiskBinScheduler,
    UnwrapContext,
    default_seed,
    grow_region,
    robust_unwrap,
    seed_region,
    unwrap_phase_3d_robust,
    unwrap_relative_to,
    wrap_phase,
)

TWO_PI = 2 * math.pi


def _ramp_volume(shape=(8, 10, 12), steps=(0.5, 0.7, 0.9)):
    """True (D, H, W) phase built from linear ramps and its wrapped version."""
    d, h, w = shape
    zz, yy, xx = np.meshgrid(np.arange(d), np.arange(h), np.arange(w), indexing='ij')
    true_phase = steps[0] * zz + steps[1] * yy + steps[2] * xx - 10.0
    return true_phase, wrap_phase(true_phase)


def _assert_equal_up_to_whole_cycles(testcase, unwrapped, true_phase, atol=1e-9):
    """All voxels must share one 2*pi*k offset from the true phase."""
    offset = unwrapped - true_phase
    cycles = offset.ravel()[0] / TWO_PI
    testcase.assertLess(abs(cycles - round(cycles)), 1e-3)
    np.testing.assert_allclose(offset, offset.ravel()[0], atol=atol)


class TestUnwrapRelativeTo(unittest.TestCase):

    def test_within_half_cycle_is_unchanged(self):
        self.assertEqual(unwrap_relative_to(3.0, 0.0), 3.0)
        self.assertEqual(unwrap_relative_to(-3.0, 0.0), -3.0)

    def test_jumps_are_corrected_by_whole_cycles(self):
        self.assertAlmostEqual(unwrap_relative_to(-3.0, 3.0), -3.0 + TWO_PI)
        self.assertAlmostEqual(unwrap_relative_to(3.0, -3.0), 3.0 - TWO_PI)
        self.assertAlmostEqual(unwrap_relative_to(7.0, 0.0), 7.0 - TWO_PI)
        self.assertAlmostEqual(unwrap_relative_to(-7.0, 0.0), -7.0 + TWO_PI)
        self.assertAlmostEqual(unwrap_relative_to(10.0, 0.0), 10.0 - 2 * TWO_PI)
        self.assertAlmostEqual(unwrap_relative_to(0.5, 20.0), 0.5 + 3 * TWO_PI)


class TestRobustUnwrapBuffers(unittest.TestCase):

    def test_uniform_risk_constant_phase_is_returned_unchanged(self):
        phase = np.full(27, 0.5)
        result = robust_unwrap((3, 3, 3), phase, np.zeros(27), n_bins=1)
        np.testing.assert_array_equal(result.unwrapped, phase)
        self.assertTrue(result.complete)
        self.assertEqual(result.n_bins, 2)
        self.assertEqual(sum(result.n_deferred), 0)
        self.assertEqual(result.n_processed[0], 27)

    def test_line_with_two_pi_jump(self):
        phase = np.array([0.0, 0.0, 3.0, -3.0, 0.0])
        result = robust_unwrap((1, 1, 5), phase, np.zeros(5), n_bins=2, seed=(0, 0, 0))
        expected = np.array([0.0, 0.0, 3.0, -3.0 + TWO_PI, TWO_PI])
        np.testing.assert_allclose(result.unwrapped, expected)
        steps = np.diff(result.unwrapped)
        self.assertTrue(np.all((steps > -math.pi) & (steps <= math.pi)))
        np.testing.assert_allclose(result.unwrapped[3:] - phase[3:], TWO_PI)

    def test_seed_outside_grid_raises_before_writing(self):
        out = np.full(64, 7.0)
        with self.assertRaises(SeedOutOfBoundsError) as ctx:
            robust_unwrap((4, 4, 4), np.zeros(64), np.ones(64), seed=(1, 1, 4), out=out)
        self.assertEqual(ctx.exception.seed, (1, 1, 4))
        self.assertEqual(ctx.exception.dims, (4, 4, 4))
        self.assertIsInstance(ctx.exception, ValueError)
        np.testing.assert_array_equal(out, 7.0)

    def test_negative_seed_raises(self):
        with self.assertRaises(SeedOutOfBoundsError):
            robust_unwrap((4, 4, 4), np.zeros(64), np.ones(64), seed=(-1, 0, 0))

    def test_non_finite_inputs_raise_before_writing(self):
        phase = np.zeros(27)
        phase[5] = np.nan
        out = np.full(27, -1.0)
        with self.assertRaises(ValueError) as ctx:
            robust_unwrap((3, 3, 3), phase, np.ones(27), out=out)
        self.assertIn("voxel 5", str(ctx.exception))
        np.testing.assert_array_equal(out, -1.0)

        magnitude = np.ones(27)
        magnitude[20] = np.inf
        with self.assertRaises(ValueError) as ctx:
            robust_unwrap((3, 3, 3), np.zeros(27), magnitude, out=out)
        self.assertIn("voxel 20", str(ctx.exception))
        np.testing.assert_array_equal(out, -1.0)

    def test_default_seed_is_grid_centre(self):
        self.assertEqual(default_seed((3, 4, 5)), (1, 1, 2))
        self.assertEqual(default_seed((1, 1, 1)), (0, 0, 0))
        result = robust_unwrap((5, 5, 5), np.zeros(125), np.ones(125))
        self.assertEqual(result.seed, (2, 2, 2))

    def test_buffer_size_mismatch_raises(self):
        with self.assertRaises(ValueError):
            robust_unwrap((2, 2, 2), np.zeros(7), np.zeros(8))
        with self.assertRaises(ValueError):
            robust_unwrap((2, 2, 2), np.zeros(8), np.zeros(9))
        with self.assertRaises(ValueError):
            robust_unwrap((2, 0, 2), np.zeros(0), np.zeros(0))

    def test_output_buffer_is_filled_in_place(self):
        rng = np.random.default_rng(0)
        phase = rng.uniform(-np.pi, np.pi, 60)
        out = np.empty((5, 4, 3))
        result = robust_unwrap((3, 4, 5), phase, rng.uniform(0, 1, 60), out=out)
        self.assertTrue(np.shares_memory(result.unwrapped, out))
        np.testing.assert_array_equal(out.ravel(), result.unwrapped)

    def test_every_voxel_written_exactly_once(self):
        rng = np.random.default_rng(1)
        geometry = GridGeometry(6, 5, 4)
        phase = rng.uniform(-np.pi, np.pi, geometry.size)
        risk = rng.uniform(0, 1, geometry.size)
        ctx = UnwrapContext(
            geometry=geometry,
            wrapped_phase=phase,
            unwrapped=np.zeros(geometry.size),
            scheduler=RiskBinScheduler(risk, 16),
        )
        seed_region(ctx, (2, 2, 2))
        grow_region(ctx)
        self.assertEqual(ctx.n_written, geometry.size)
        self.assertTrue(ctx.visited.all())
        self.assertFalse(ctx.aborted)
        self.assertEqual(sum(ctx.scheduler.n_processed), geometry.size)

    def test_output_is_congruent_to_input_modulo_two_pi(self):
        rng = np.random.default_rng(2)
        phase = rng.uniform(-np.pi, np.pi, 7 * 6 * 5)
        result = robust_unwrap((7, 6, 5), phase, rng.uniform(0, 1, phase.size), n_bins=10)
        cycles = (result.unwrapped - phase) / TWO_PI
        np.testing.assert_allclose(cycles, np.round(cycles), atol=1e-9)

    def test_continuous_input_is_left_unchanged(self):
        true_phase, _ = _ramp_volume(shape=(6, 6, 6), steps=(0.3, 0.6, 0.9))
        rng = np.random.default_rng(3)
        result = robust_unwrap((6, 6, 6), true_phase, rng.uniform(0, 1, 216), n_bins=8)
        np.testing.assert_array_equal(result.unwrapped, true_phase.ravel())

    def test_wrapped_ramp_is_recovered(self):
        true_phase, wrapped = _ramp_volume()
        d, h, w = true_phase.shape
        result = robust_unwrap((w, h, d), wrapped, np.ones_like(wrapped), n_bins=4)
        _assert_equal_up_to_whole_cycles(self, result.unwrapped.reshape(true_phase.shape), true_phase)

    def test_repeated_runs_are_identical(self):
        rng = np.random.default_rng(4)
        phase = rng.uniform(-np.pi, np.pi, 8 * 8 * 8)
        magnitude = rng.uniform(0, 1, phase.size)
        first = robust_unwrap((8, 8, 8), phase, magnitude, n_bins=20)
        second = robust_unwrap((8, 8, 8), phase, magnitude, n_bins=20)
        np.testing.assert_array_equal(first.unwrapped, second.unwrapped)
        self.assertEqual(first.n_deferred, second.n_deferred)

    def _two_path_grid(self, magnitude):
        # 2x2 grid seeded at (0, 0): voxel (1, 1) is reached either through
        # (1, 0) or through (0, 1), and the two paths unwrap it differently.
        phase = np.array([0.0, 3.0, -3.0, -3.0])
        return robust_unwrap((2, 2, 1), phase, np.asarray(magnitude, dtype=float), n_bins=2, seed=(0, 0, 0))

    def test_high_magnitude_voxels_are_expanded_first(self):
        through_x = self._two_path_grid([1.0, 1.0, 0.0, 1.0])
        self.assertAlmostEqual(through_x.unwrapped[3], -3.0 + TWO_PI)
        self.assertEqual(through_x.n_deferred[0], 1)

        through_y = self._two_path_grid([1.0, 0.0, 1.0, 1.0])
        self.assertAlmostEqual(through_y.unwrapped[3], -3.0)

    def test_risk_field_used_directly_without_negation(self):
        config = RobustUnwrapConfig(negate_magnitude=False)
        phase = np.array([0.0, 3.0, -3.0, -3.0])
        risk = np.array([0.0, 0.0, 1.0, 0.0])
        result = robust_unwrap((2, 2, 1), phase, risk, n_bins=2, seed=(0, 0, 0), config=config)
        self.assertAlmostEqual(result.unwrapped[3], -3.0 + TWO_PI)

    def test_queue_overflow_aborts_and_reports_partial_result(self):
        n = 20
        out = np.full(n ** 3, np.nan)
        config = RobustUnwrapConfig(max_queue_capacity=100)
        with self.assertRaises(QueueOverflowError) as ctx:
            robust_unwrap((n, n, n), np.zeros(n ** 3), np.ones(n ** 3), out=out, config=config)
        partial = ctx.exception.partial_result
        self.assertIsNotNone(partial)
        self.assertFalse(partial.complete)
        self.assertGreater(partial.n_reached, 1)
        np.testing.assert_array_equal(out[partial.visited], 0.0)
        self.assertTrue(np.isnan(out[~partial.visited]).all())


class TestUnwrapPhase3DRobust(unittest.TestCase):

    def setUp(self):
        self.true_phase, self.wrapped_phase = _ramp_volume()

    def test_torch_tensor_round_trip(self):
        wrapped = torch.from_numpy(self.wrapped_phase).float()
        unwrapped = unwrap_phase_3d_robust(wrapped, magnitude=torch.ones_like(wrapped), n_bins=8)
        self.assertTrue(torch.is_tensor(unwrapped))
        self.assertEqual(unwrapped.dtype, torch.float32)
        self.assertEqual(unwrapped.shape, wrapped.shape)
        self.assertEqual(unwrapped.device, wrapped.device)
        _assert_equal_up_to_whole_cycles(self, unwrapped.double().numpy(), self.true_phase, atol=1e-4)

    def test_numpy_input_gives_numpy_output(self):
        unwrapped = unwrap_phase_3d_robust(self.wrapped_phase)
        self.assertIsInstance(unwrapped, np.ndarray)
        self.assertEqual(unwrapped.dtype, np.float64)
        _assert_equal_up_to_whole_cycles(self, unwrapped, self.true_phase)

    def test_seed_is_in_array_index_order(self):
        unwrapped = unwrap_phase_3d_robust(self.wrapped_phase, seed=(1, 2, 3))
        self.assertEqual(unwrapped[1, 2, 3], self.wrapped_phase[1, 2, 3])
        with self.assertRaises(SeedOutOfBoundsError):
            unwrap_phase_3d_robust(self.wrapped_phase, seed=(8, 0, 0))

    def test_low_magnitude_region_does_not_corrupt_the_rest(self):
        shape = (12, 12, 12)
        true_phase, wrapped = _ramp_volume(shape=shape)
        magnitude = np.ones(shape)
        rng = np.random.default_rng(5)
        # a noisy, low-signal wall that paths can only get around through h >= 6
        wrapped[:, :6, 5:8] = rng.uniform(-np.pi, np.pi, (12, 6, 3))
        magnitude[:, :6, 5:8] = 0.01

        unwrapped = unwrap_phase_3d_robust(wrapped, magnitude=magnitude, seed=(6, 9, 2), n_bins=50)
        good = magnitude == 1.0
        offset = (unwrapped - true_phase)[good]
        np.testing.assert_allclose(offset, 0.0, atol=1e-9)

    def test_mask_zeroes_outside_and_reseeds(self):
        mask = np.zeros(self.wrapped_phase.shape, dtype=bool)
        mask[:3, :4, :5] = True
        magnitude = np.ones(self.wrapped_phase.shape)
        unwrapped = unwrap_phase_3d_robust(self.wrapped_phase, magnitude=magnitude, mask=mask)
        self.assertTrue(np.all(unwrapped[~mask] == 0))
        _assert_equal_up_to_whole_cycles(self, unwrapped[mask], self.true_phase[mask])

    def test_empty_mask_returns_zeros(self):
        mask = torch.zeros(self.wrapped_phase.shape, dtype=torch.bool)
        unwrapped = unwrap_phase_3d_robust(torch.from_numpy(self.wrapped_phase), mask=mask)
        self.assertTrue(torch.all(unwrapped == 0))

    def test_invalid_inputs(self):
        with self.assertRaises(TypeError):
            unwrap_phase_3d_robust(self.wrapped_phase.tolist())
        with self.assertRaises(ValueError):
            unwrap_phase_3d_robust(self.wrapped_phase[0])
        with self.assertRaises(ValueError):
            unwrap_phase_3d_robust(self.wrapped_phase, magnitude=np.ones((2, 2, 2)))
        with self.assertRaises(ValueError):
            unwrap_phase_3d_robust(self.wrapped_phase, mask=np.ones((2, 2, 2), dtype=bool))


class TestRobustUnwrapConfig(unittest.TestCase):

    def test_defaults(self):
        config = RobustUnwrapConfig()
        self.assertEqual(config.initial_capacity, 100)
        self.assertEqual(config.capacity_increment, 500)
        self.assertTrue(config.negate_magnitude)

    def test_effective_bins_has_minimum_of_two(self):
        self.assertEqual(RobustUnwrapConfig(n_bins=1).effective_bins, 2)
        self.assertEqual(RobustUnwrapConfig(n_bins=64).effective_bins, 64)

    def test_overrides_ignore_none(self):
        config = RobustUnwrapConfig(n_bins=10)
        self.assertIs(config.with_overrides(n_bins=None), config)
        self.assertEqual(config.with_overrides(n_bins=3).n_bins, 3)
        with self.assertRaises(TypeError):
            config.with_overrides(bins=3)

    def test_invalid_values(self):
        with self.assertRaises(ValueError):
            RobustUnwrapConfig(initial_capacity=1)
        with self.assertRaises(ValueError):
            RobustUnwrapConfig(capacity_increment=0)
        with self.assertRaises(ValueError):
            RobustUnwrapConfig(max_queue_capacity=10)
        with self.assertRaises(ValueError):
            RobustUnwrapConfig(threshold_margin=0.5)


if __name__ == '__main__':
    unittest.main()
