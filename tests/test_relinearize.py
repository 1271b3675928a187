from roadflow.overline_utils.aggregate import aggregate_segments
from roadflow.overline_utils.decompose import Route, decompose_routes
from roadflow.overline_utils.relinearize import (
    OutputRoute,
    atomic_routes,
    build_segment_graph,
    relinearize,
)


def _registry(routes, reduction="sum", directed=False):
    return aggregate_segments(decompose_routes(routes, ["all"]), ["all"], reduction, directed)


def _summary(out):
    return [(r.coords, r.values) for r in out]


def test_straight_chain_becomes_one_route():
    reg = _registry([Route([(0, 0), (1, 0), (2, 0), (3, 0)], {"all": 4})])
    out = relinearize(reg)
    assert len(out) == 1
    assert out[0].coords == ((0.0, 0.0), (1.0, 0.0), (2.0, 0.0), (3.0, 0.0))
    assert out[0].values == {"all": 4.0}
    assert out[0].n_segments == 3
    assert out[0].route_indices == frozenset({0})


def test_chain_orientation_starts_at_lower_end():
    reg = _registry([Route([(3, 0), (2, 0), (1, 0), (0, 0)], {"all": 4})])
    assert relinearize(reg)[0].coords == ((0.0, 0.0), (1.0, 0.0), (2.0, 0.0), (3.0, 0.0))


def test_value_change_splits_chain():
    reg = _registry(
        [
            Route([(0, 0), (1, 0), (2, 0)], {"all": 5}),
            Route([(1, 0), (2, 0), (3, 0)], {"all": 3}),
        ]
    )
    assert _summary(relinearize(reg)) == [
        (((0.0, 0.0), (1.0, 0.0)), {"all": 5.0}),
        (((1.0, 0.0), (2.0, 0.0)), {"all": 8.0}),
        (((2.0, 0.0), (3.0, 0.0)), {"all": 3.0}),
    ]


def test_branch_point_splits_every_branch():
    reg = _registry(
        [
            Route([(0, 0), (1, 0)], {"all": 1}),
            Route([(1, 0), (2, 1)], {"all": 1}),
            Route([(1, 0), (2, -1)], {"all": 1}),
        ]
    )
    out = relinearize(reg)
    assert [r.coords for r in out] == [
        ((0.0, 0.0), (1.0, 0.0)),
        ((1.0, 0.0), (2.0, -1.0)),
        ((1.0, 0.0), (2.0, 1.0)),
    ]


def test_side_branch_with_other_value_does_not_break_chain():
    reg = _registry(
        [
            Route([(0, 0), (1, 0), (2, 0)], {"all": 1}),
            Route([(1, 0), (1, 1)], {"all": 2}),
        ]
    )
    out = relinearize(reg)
    assert _summary(out) == [
        (((0.0, 0.0), (1.0, 0.0), (2.0, 0.0)), {"all": 1.0}),
        (((1.0, 0.0), (1.0, 1.0)), {"all": 2.0}),
    ]


def test_adjacent_routes_with_equal_values_merge_and_keep_provenance():
    reg = _registry(
        [
            Route([(0, 0), (1, 0)], {"all": 2}),
            Route([(1, 0), (2, 0)], {"all": 2}),
        ]
    )
    out = relinearize(reg)
    assert len(out) == 1
    assert out[0].route_indices == frozenset({0, 1})


def test_closed_loop_starts_at_lowest_point():
    reg = _registry([Route([(0, 0), (1, 0), (1, 1), (0, 1), (0, 0)], {"all": 3})])
    out = relinearize(reg)
    assert len(out) == 1
    assert out[0].coords == ((0.0, 0.0), (0.0, 1.0), (1.0, 1.0), (1.0, 0.0), (0.0, 0.0))
    assert out[0].n_segments == 4


def test_directed_chains_follow_traversal():
    routes = [
        Route([(0, 0), (1, 0), (2, 0)], {"all": 2}),
        Route([(2, 0), (1, 0), (0, 0)], {"all": 2}),
    ]
    out = relinearize(_registry(routes, directed=True))
    assert [(r.coords, r.route_indices) for r in out] == [
        (((0.0, 0.0), (1.0, 0.0), (2.0, 0.0)), frozenset({0})),
        (((2.0, 0.0), (1.0, 0.0), (0.0, 0.0)), frozenset({1})),
    ]

    undirected = relinearize(_registry(routes))
    assert _summary(undirected) == [(((0.0, 0.0), (1.0, 0.0), (2.0, 0.0)), {"all": 4.0})]


def test_value_tolerance_controls_merging():
    routes = [
        Route([(0, 0), (1, 0)], {"all": 0.1}),
        Route([(0, 0), (1, 0)], {"all": 0.2}),
        Route([(1, 0), (2, 0)], {"all": 0.3}),
    ]
    reg = _registry(routes)
    assert len(relinearize(reg)) == 1
    assert len(relinearize(reg, value_rel_tol=0.0)) == 2


def test_large_integral_sums_differing_by_one_stay_apart():
    routes = [
        Route([(0, 0), (1, 0)], {"all": 10**10}),
        Route([(1, 0), (2, 0)], {"all": 10**10 + 1}),
    ]
    out = relinearize(_registry(routes))
    assert _summary(out) == [
        (((0.0, 0.0), (1.0, 0.0)), {"all": 1e10}),
        (((1.0, 0.0), (2.0, 0.0)), {"all": 1e10 + 1}),
    ]
    assert sum(r.values["all"] for r in out) == 2 * 10**10 + 1


def test_large_counts_compare_exactly():
    reg = _registry(
        [
            Route([(0, 0), (1, 0)], {"all": 1}),
            Route([(1, 0), (2, 0)], {"all": 1}),
        ],
        reduction="count",
    )
    first, second = reg.records()
    first.accumulators = [10**10]
    second.accumulators = [10**10 + 1]
    out = relinearize(reg)
    assert [r.values["all"] for r in out] == [10**10, 10**10 + 1]


def test_atomic_routes_skip_merging():
    reg = _registry([Route([(0, 0), (1, 0), (2, 0), (3, 0)], {"all": 4})])
    out = atomic_routes(reg)
    assert [r.coords for r in out] == [
        ((0.0, 0.0), (1.0, 0.0)),
        ((1.0, 0.0), (2.0, 0.0)),
        ((2.0, 0.0), (3.0, 0.0)),
    ]
    assert all(r.n_segments == 1 for r in out)


def test_segment_graph_has_one_edge_per_record():
    reg = _registry([Route([(0, 0), (1, 0), (1, 1)], {"all": 1})])
    G = build_segment_graph(reg.records())
    assert G.number_of_nodes() == 3
    assert G.number_of_edges() == 2


def test_output_route_linestring():
    r = OutputRoute(coords=((0.0, 0.0), (3.0, 4.0)), values={"all": 1.0})
    assert r.to_linestring().length == 5.0
