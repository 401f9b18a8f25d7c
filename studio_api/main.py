from __future__ import annotations

import logging
import math
from typing import Literal

import numpy as np
import pandas as pd
from fastapi import FastAPI, Query
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from fastapi.encoders import jsonable_encoder

from studio_api.schemas import DashboardFiltersModel, DrilldownRequest, MetaFiltersResponse
from studio_core.data import distinct_values, load_dashboard_data, prepare_context
from studio_core.filters import DashboardFilters, normalize_filters, seller_name
from studio_core.metrics_conversion import compute_conversion_cards, compute_conversion_month_on_month, compute_drilldown
from studio_core.metrics_debug import compute_debug
from studio_core.metrics_discounts import compute_discounts
from studio_core.metrics_patterns import (
    compute_churned,
    compute_patterns_month_on_month,
    compute_patterns_overview,
    compute_type_analysis,
)


app = FastAPI(title="Studio Dashboard API", version="0.1.0")
logger = logging.getLogger(__name__)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["http://localhost:3000", "http://127.0.0.1:3000"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


def _filters_from_model(model: DashboardFiltersModel) -> DashboardFilters:
    return normalize_filters(model.model_dump())


def _json(data: object) -> JSONResponse:
    """Return JSON with safe encoding for pandas/numpy objects."""

    def _safe_float(value: object) -> float | None:
        try:
            out = float(value)  # type: ignore[arg-type]
        except Exception:
            return None
        if math.isnan(out) or math.isinf(out):
            return None
        return out

    return JSONResponse(
        content=jsonable_encoder(
            data,
            custom_encoder={
                type(pd.NA): lambda _: None,
                np.integer: int,
                float: _safe_float,
                np.floating: _safe_float,
                np.bool_: bool,
                np.ndarray: lambda arr: arr.tolist(),
                pd.Timestamp: lambda ts: ts.isoformat(),
            },
        )
    )


def _error(exc: Exception, status_code: int = 500) -> JSONResponse:
    return JSONResponse(status_code=status_code, content={"error": str(exc), "type": type(exc).__name__})


@app.get("/health")
def health():
    return {"status": "ok"}


@app.get("/meta/filters")
def meta_filters():
    try:
        data_ctx = load_dashboard_data()
        clients = data_ctx.get("clients", []) or []
        sessions = data_ctx.get("sessions", []) or []
        sales = data_ctx.get("sales", []) or []
        locations = set(distinct_values(clients, "first_visit_location"))
        locations.update(distinct_values(clients, "home_location"))
        locations.update(distinct_values(sessions, "location_name"))
        locations.update(distinct_values(sales, "calculated_location"))
        meta = MetaFiltersResponse(
            locations=sorted(locations),
            trainers=distinct_values(clients, "trainer_name"),
            conversion_statuses=distinct_values(clients, "conversion_status"),
            retention_statuses=distinct_values(clients, "retention_status"),
            is_new_values=distinct_values(clients, "is_new"),
            membership_types=distinct_values(sessions, "type"),
            categories=distinct_values(sales, "cleaned_category"),
            sold_by=sorted({seller_name(s) for s in sales if s.sold_by}),
        )
        return _json(meta.model_dump())
    except Exception as exc:
        logger.exception("meta_filters failed")
        return _error(exc)


@app.post("/conversion/cards")
def conversion_cards(filters: DashboardFiltersModel):
    try:
        f = _filters_from_model(filters)
        ctx = prepare_context(f, load_dashboard_data())
        return _json(compute_conversion_cards(f, ctx))
    except Exception as exc:
        logger.exception("conversion_cards failed")
        return _error(exc)


@app.post("/conversion/month-on-month")
def conversion_month_on_month(
    filters: DashboardFiltersModel,
    by: Literal["month", "type", "class"] = Query(default="month"),
    granularity: Literal["month", "year"] = Query(default="month"),
):
    try:
        f = _filters_from_model(filters)
        ctx = prepare_context(f, load_dashboard_data())
        return _json(compute_conversion_month_on_month(f, ctx, by=by, granularity=granularity))
    except Exception as exc:
        logger.exception("conversion_month_on_month failed")
        return _error(exc)


@app.post("/conversion/drilldown")
def conversion_drilldown(request: DrilldownRequest):
    try:
        f = _filters_from_model(request.filters)
        ctx = prepare_context(f, load_dashboard_data())
        return _json(
            compute_drilldown(
                f,
                ctx,
                metric_type=request.metric_type,
                by=request.by,
                granularity=request.granularity,
                period_key=request.period_key,
                dimension=request.dimension,
            )
        )
    except ValueError as exc:
        logger.warning("conversion_drilldown rejected: %s", exc)
        return _error(exc, status_code=400)
    except Exception as exc:
        logger.exception("conversion_drilldown failed")
        return _error(exc)


@app.post("/patterns/overview")
def patterns_overview(filters: DashboardFiltersModel):
    try:
        f = _filters_from_model(filters)
        ctx = prepare_context(f, load_dashboard_data())
        return _json(compute_patterns_overview(f, ctx))
    except Exception as exc:
        logger.exception("patterns_overview failed")
        return _error(exc)


@app.post("/patterns/month-on-month")
def patterns_month_on_month(filters: DashboardFiltersModel):
    try:
        f = _filters_from_model(filters)
        ctx = prepare_context(f, load_dashboard_data())
        return _json(compute_patterns_month_on_month(f, ctx))
    except Exception as exc:
        logger.exception("patterns_month_on_month failed")
        return _error(exc)


@app.post("/patterns/type-analysis")
def patterns_type_analysis(filters: DashboardFiltersModel):
    try:
        f = _filters_from_model(filters)
        ctx = prepare_context(f, load_dashboard_data())
        return _json(compute_type_analysis(f, ctx))
    except Exception as exc:
        logger.exception("patterns_type_analysis failed")
        return _error(exc)


@app.post("/patterns/churned")
def patterns_churned(filters: DashboardFiltersModel):
    try:
        f = _filters_from_model(filters)
        ctx = prepare_context(f, load_dashboard_data())
        return _json(compute_churned(f, ctx))
    except Exception as exc:
        logger.exception("patterns_churned failed")
        return _error(exc)


@app.post("/discounts")
def discounts(filters: DashboardFiltersModel):
    try:
        f = _filters_from_model(filters)
        ctx = prepare_context(f, load_dashboard_data())
        return _json(compute_discounts(f, ctx))
    except Exception as exc:
        logger.exception("discounts failed")
        return _error(exc)


@app.post("/debug")
def debug(filters: DashboardFiltersModel):
    try:
        f = _filters_from_model(filters)
        ctx = prepare_context(f, load_dashboard_data())
        return _json(compute_debug(f, ctx))
    except Exception as exc:
        logger.exception("debug failed")
        return _error(exc)
