"""Tests for the draw-select tool."""
import pytest

from core.draw_select import DrawSelect, DrawState
from core.measurement import MeasureMode, MeasurementEngine, MeasureState
from geometry.types import BoundingBox, GeoPoint
from tests.fakes import SELECTION, FakeLayer, point_feature

NW = GeoPoint(-83.0, 40.0)
SE = GeoPoint(-82.9, 39.9)


@pytest.fixture
def layer():
    return FakeLayer("bridges", spatial=[point_feature(-82.95, 39.95), point_feature(-80.0, 35.0)])


@pytest.fixture
def session(make_session, layer):
    return make_session([layer])


class TestDrawSelect:
    def test_start_arms_tool(self, session, display):
        tool = DrawSelect(session)
        tool.start()

        assert tool.state is DrawState.ARMING
        assert session.active_tool is tool
        assert display.messages == ["Click and drag on the map to select features"]

    def test_drag_suspends_panning_and_reports_rectangle(self, session, map_view):
        tool = DrawSelect(session)
        tool.start()
        tool.pointer_down(NW)

        assert tool.state is DrawState.DRAGGING
        assert map_view.dragging is False

        overlay = tool.pointer_move(GeoPoint(-82.95, 39.95))
        assert overlay == BoundingBox(-83.0, 39.95, -82.95, 40.0)

    def test_events_ignored_outside_their_states(self, session):
        tool = DrawSelect(session)

        tool.pointer_down(NW)
        assert tool.state is DrawState.IDLE
        assert tool.pointer_move(SE) is None

    @pytest.mark.asyncio
    async def test_completed_drag_runs_selection(self, session, layer, map_view, display):
        tool = DrawSelect(session)
        tool.start()
        tool.pointer_down(NW)
        tool.pointer_move(SE)

        result = await tool.pointer_up(SE)

        assert result is not None
        assert result.bbox == SELECTION
        assert result.feature_count == 1
        assert tool.state is DrawState.IDLE
        assert session.active_tool is None
        assert map_view.dragging is True
        assert len(layer.within_calls) == 1
        assert display.feature_batches == [result.features]

    @pytest.mark.asyncio
    async def test_short_drag_stays_armed_without_query(self, session, layer, map_view):
        tool = DrawSelect(session)
        tool.start()
        tool.pointer_down(NW)

        # 5 px by 5 px
        result = await tool.pointer_up(GeoPoint(-82.995, 39.995))

        assert result is None
        assert tool.state is DrawState.ARMING
        assert layer.network_calls == 0
        assert map_view.dragging is True
        assert session.active_tool is tool

    @pytest.mark.asyncio
    async def test_short_on_one_axis_is_too_short(self, session, layer):
        tool = DrawSelect(session)
        tool.start()
        tool.pointer_down(NW)

        # 100 px wide, 5 px tall
        assert await tool.pointer_up(GeoPoint(-82.9, 39.995)) is None
        assert layer.network_calls == 0

    @pytest.mark.asyncio
    async def test_rearmed_tool_can_select(self, session):
        tool = DrawSelect(session)
        tool.start()
        tool.pointer_down(NW)
        await tool.pointer_up(GeoPoint(-82.999, 39.999))

        tool.pointer_down(NW)
        result = await tool.pointer_up(SE)

        assert result.feature_count == 1

    def test_stop_restores_prior_panning(self, session, map_view):
        map_view.dragging = False
        tool = DrawSelect(session)
        tool.start()
        tool.pointer_down(NW)
        tool.stop()

        assert tool.state is DrawState.IDLE
        assert tool.current_bbox() is None
        assert map_view.dragging is False
        assert session.active_tool is None

    def test_stop_when_idle_is_harmless(self, session, map_view):
        tool = DrawSelect(session)
        tool.stop()

        assert tool.state is DrawState.IDLE
        assert map_view.dragging_history == []

    def test_min_drag_pixels_from_settings(self, make_session):
        session = make_session([], min_drag_pixels=25)
        assert DrawSelect(session).min_drag_pixels == 25


class TestExclusivity:
    def test_draw_stops_measurement(self, session):
        measure = MeasurementEngine(session)
        measure.start_measuring(MeasureMode.LINE)
        measure.click(NW)

        DrawSelect(session).start()

        assert measure.state is MeasureState.IDLE
        assert measure.vertices == []

    def test_measurement_stops_draw(self, session, map_view):
        draw = DrawSelect(session)
        draw.start()
        draw.pointer_down(NW)

        MeasurementEngine(session).start_measuring(MeasureMode.AREA)

        assert draw.state is DrawState.IDLE
        assert map_view.dragging is True
