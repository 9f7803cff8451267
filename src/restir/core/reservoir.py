"""Weighted reservoir resampling primitives.

This module provides the two data structures the resampling pipeline is
built on:

    ReservoirBuilder: mutable streaming accumulator. New candidates are
        absorbed with stream(), partial results from other domains (previous
        frame, neighbouring points) are combined with merge().
    Reservoir: finalized, read-only result of a builder. It stores only the
        history (number of candidates it represents) and the contribution
        weight that turns the selected sample's value into an estimate of
        the integral.

Both are Taichi dataclasses whose methods are Taichi functions, so they can
be used as local variables inside kernels and stored in struct fields.
Methods that mutate the builder must be called on a local variable, not on
a field element.

Every random decision takes its uniform draw u in [0, 1) as an argument.
Kernels pass ti.random(ti.f32); tests pass fixed values.

Example:
    >>> import taichi as ti
    >>> ti.init(arch=ti.cpu)
    >>> from src.restir.core.reservoir import new_builder
    >>> @ti.kernel
    ... def estimate() -> ti.f32:
    ...     builder = new_builder()
    ...     builder.stream(1.0, 2.0, ti.random(ti.f32))
    ...     return builder.finish(1).contribution_weight
"""

import taichi as ti


@ti.dataclass
class Reservoir:
    """A finalized reservoir.

    Attributes:
        history: Number of candidates this reservoir stands for.
        contribution_weight: Factor turning the selected sample's raw value
            into its contribution to the integral. Zero when the selected
            sample is known to be worthless.
    """

    history: ti.i32
    contribution_weight: ti.f32

    @ti.func
    def has_weight(self) -> ti.i32:
        """Check if the reservoir carries any weight.

        Used to skip re-evaluating the target function of a sample that
        cannot contribute anything.
        """
        result = 0
        if self.contribution_weight != 0.0:
            result = 1
        return result

    @ti.func
    def to_builder(self, selected_target_pdf):
        """Convert the reservoir back into a builder state.

        The target PDF must be re-evaluated in the domain that consumes the
        reservoir, which may differ from the domain it was produced in.

        Args:
            selected_target_pdf: Target function value of the selected
                sample, evaluated in the consuming domain.

        Returns:
            A ReservoirBuilder with weight_sum = W * history * target.
        """
        return ReservoirBuilder(
            history=self.history,
            weight_sum=self.contribution_weight
            * ti.cast(self.history, ti.f32)
            * selected_target_pdf,
            selected_target_pdf=selected_target_pdf,
        )

    @ti.func
    def with_max_history(self, max_history):
        """Return a copy with history clamped to max_history.

        The contribution weight is left untouched.
        """
        return Reservoir(
            history=ti.min(self.history, max_history),
            contribution_weight=self.contribution_weight,
        )


@ti.dataclass
class ReservoirBuilder:
    """Streaming accumulator for weighted reservoir resampling.

    Attributes:
        history: Number of candidates seen so far, including empty ones.
        weight_sum: Sum of the resampling weights of all candidates.
        selected_target_pdf: Target function value of the selected sample.
    """

    history: ti.i32
    weight_sum: ti.f32
    selected_target_pdf: ti.f32

    @ti.func
    def stream(self, source_pdf, target_value, u) -> ti.i32:
        """Stream in a new sample.

        After n calls, sample i is the selected one with probability
        weight_i / sum(weight_j), regardless of the arrival order.

        Args:
            source_pdf: PDF of the distribution the sample was drawn from.
                Must be positive.
            target_value: Unnormalized target PDF of the sample.
            u: Uniform random number in [0, 1).

        Returns:
            1 if the sample got selected, 0 otherwise.
        """
        assert source_pdf > 0.0, "source pdf must be positive"
        weight = target_value / source_pdf
        self.history += 1
        self.weight_sum += weight
        accepted = 0
        if u * self.weight_sum < weight:
            self.selected_target_pdf = target_value
            accepted = 1
        return accepted

    @ti.func
    def add_empty_sample(self):
        """Register a candidate that was drawn but has zero value."""
        self.history += 1

    @ti.func
    def merge(self, other, u) -> ti.i32:
        """Merge another builder into this one.

        The result is distributed as if every sample of both builders had
        been streamed into a single one.

        Args:
            other: The ReservoirBuilder to absorb.
            u: Uniform random number in [0, 1).

        Returns:
            1 if the other builder's sample got selected, 0 otherwise.
        """
        self.weight_sum += other.weight_sum
        self.history += other.history
        accepted = 0
        if u * self.weight_sum < other.weight_sum:
            self.selected_target_pdf = other.selected_target_pdf
            accepted = 1
        return accepted

    @ti.func
    def merge_history(self, other):
        """Merge only the history of a reservoir that has no weight."""
        self.history += other.history

    @ti.func
    def unmerge(self, other):
        """Reverse the bookkeeping of a previous merge().

        The selection is not reverted: if the merge changed the selected
        sample, the caller decides whether the selection is still valid.
        """
        assert self.history >= other.history, "unmerge removes more history than was merged"
        self.weight_sum = ti.max(self.weight_sum - other.weight_sum, 0.0)
        self.history -= other.history

    @ti.func
    def unmerge_history(self, other):
        """Reverse the effect of merge_history()."""
        assert self.history >= other.history, "unmerge removes more history than was merged"
        self.history -= other.history

    @ti.func
    def invalidate(self):
        """Zero out the selected sample while keeping the history."""
        self.selected_target_pdf = 0.0
        self.weight_sum = 0.0

    @ti.func
    def collapse(self):
        """Collapse all collected samples into a single one.

        Used before merging with reservoirs from other domains, so that a
        point with many initial candidates does not outweigh reused
        reservoirs that represent fewer independent draws.
        """
        assert self.history > 0, "cannot collapse an empty reservoir"
        self.weight_sum /= ti.cast(self.history, ti.f32)
        self.history = 1

    @ti.func
    def clamp_history(self, max_history):
        """Clamp the history, rescaling weight_sum to keep the average weight.

        Args:
            max_history: Upper bound on the history. Must be positive.
        """
        assert max_history > 0, "history limit must be positive"
        assert self.history > 0, "cannot clamp an empty reservoir"
        if self.history > max_history:
            self.weight_sum *= ti.cast(max_history, ti.f32) / ti.cast(self.history, ti.f32)
            self.history = max_history

    @ti.func
    def finish(self, max_history):
        """Finish building a reservoir.

        The contribution weight is normalized by the full history, the
        stored history is clamped to max_history so the reservoir keeps
        picking up new samples in later frames.

        Returns:
            The finalized Reservoir.
        """
        return Reservoir(
            history=ti.min(self.history, max_history),
            contribution_weight=_contribution_weight(
                self.weight_sum, self.history, self.selected_target_pdf
            ),
        )

    @ti.func
    def finish_with_history(self, unbiased_history):
        """Finish building a reservoir with an explicit normalization.

        Args:
            unbiased_history: History used in the denominator of the
                contribution weight. Only candidates from domains that could
                have produced the selected sample should be counted.

        Returns:
            The finalized Reservoir, keeping the builder's own history.
        """
        return Reservoir(
            history=self.history,
            contribution_weight=_contribution_weight(
                self.weight_sum, unbiased_history, self.selected_target_pdf
            ),
        )


@ti.func
def _contribution_weight(weight_sum: ti.f32, history: ti.i32, target_pdf: ti.f32) -> ti.f32:
    """weight_sum / (history * target_pdf), or 0 for a non-positive denominator."""
    denom = ti.cast(history, ti.f32) * target_pdf
    weight = 0.0
    if denom > 0.0:
        weight = weight_sum / denom
    return weight


@ti.func
def new_builder() -> ReservoirBuilder:
    """Create an empty ReservoirBuilder."""
    return ReservoirBuilder(history=0, weight_sum=0.0, selected_target_pdf=0.0)


@ti.func
def empty_reservoir() -> Reservoir:
    """Create a Reservoir with no history and no weight."""
    return Reservoir(history=0, contribution_weight=0.0)


@ti.func
def reservoir_from_sample(source_pdf: ti.f32) -> Reservoir:
    """Construct a reservoir holding a single sample.

    Converting it with to_builder(target_value) and merging is equivalent
    to streaming the sample directly.
    """
    return Reservoir(history=1, contribution_weight=1.0 / source_pdf)
