import os
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional

from fastapi import Depends, FastAPI, HTTPException, Query, Request
from fastapi.concurrency import run_in_threadpool
from fastapi.responses import HTMLResponse
from fastapi.templating import Jinja2Templates
from pydantic import BaseModel, Field

from techdebt.config import Config
from techdebt.errors import TechDebtError
from techdebt.facade import TechnicalDebtService
from techdebt.models import (
    AnalysisOptions,
    ApplyRefactoringRequest,
    UpdateOptions,
    UpdateStrategy,
)
from techdebt.reporting.json_report import to_jsonable
from techdebt.utils.log import setup_logging


APP_TITLE = "Technical Debt Engine"
CONFIG_ENV = "TECHDEBT_CONFIG"

app = FastAPI(title=APP_TITLE)
templates = Jinja2Templates(directory=str(Path(__file__).parent / "templates"))


class PlanBody(BaseModel):
    opportunity_ids: List[str] = Field(default_factory=list)


class ApplyBody(BaseModel):
    opportunity_id: str
    auto_confirm: bool = False
    create_backup: bool = False
    run_tests: bool = False


class UpdateBody(BaseModel):
    strategy: str = UpdateStrategy.MODERATE.value
    include_dev_dependencies: bool = True
    auto_merge: bool = False
    run_tests: bool = True
    create_backup: bool = True
    packages: Optional[List[str]] = None


def build_service() -> TechnicalDebtService:
    config_path = os.environ.get(CONFIG_ENV)
    config = Config.load(Path(config_path) if config_path else None)
    setup_logging(config.logging.level, config.logging.file)
    return TechnicalDebtService(config)


def get_service() -> TechnicalDebtService:
    service = getattr(app.state, "service", None)
    if service is None:
        service = build_service()
        app.state.service = service
    return service


async def call_engine(func: Callable[..., Any], *args: Any) -> Any:
    try:
        result = await run_in_threadpool(func, *args)
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    except TechDebtError as exc:
        raise HTTPException(status_code=500, detail=str(exc)) from exc
    return to_jsonable(result)


@app.get("/", response_class=HTMLResponse)
async def index(request: Request) -> HTMLResponse:
    dashboard = await call_engine(get_service().dashboard)
    return templates.TemplateResponse(
        request,
        "dashboard.html",
        {
            "title": APP_TITLE,
            "dashboard": dashboard,
        },
    )


def analysis_options(
    include_tests: bool = False,
    include_docs: bool = False,
    depth: Optional[str] = None,
    module: Optional[List[str]] = Query(None),
    exclude: Optional[List[str]] = Query(None),
) -> AnalysisOptions:
    return AnalysisOptions(
        include_tests=include_tests,
        include_docs=include_docs,
        exclude_patterns=exclude,
        depth=depth,
        modules=module,
    )


@app.get("/technical-debt/quality/project")
async def analyze_project(options: AnalysisOptions = Depends(analysis_options)) -> Dict[str, Any]:
    return await call_engine(get_service().quality.analyze_project, options)


@app.get("/technical-debt/quality/module/{module_name}")
async def analyze_module(
    module_name: str, options: AnalysisOptions = Depends(analysis_options)
) -> Dict[str, Any]:
    return await call_engine(get_service().quality.analyze_module, module_name, options)


@app.get("/technical-debt/quality/metrics")
async def quality_metrics() -> Dict[str, Any]:
    return await call_engine(get_service().quality.get_metrics)


@app.get("/technical-debt/refactoring/opportunities")
async def refactoring_opportunities(module: Optional[str] = None) -> List[Dict[str, Any]]:
    return await call_engine(get_service().planner.identify_refactoring_opportunities, module)


@app.post("/technical-debt/refactoring/plan")
async def refactoring_plan(body: PlanBody) -> Dict[str, Any]:
    return await call_engine(get_service().plan_for, body.opportunity_ids)


@app.post("/technical-debt/refactoring/apply")
async def apply_refactoring(body: ApplyBody) -> Dict[str, Any]:
    request = ApplyRefactoringRequest(**body.model_dump())
    return await call_engine(get_service().applier.apply_refactoring, request)


@app.get("/technical-debt/refactoring/history")
async def refactoring_history() -> List[Dict[str, Any]]:
    return await call_engine(get_service().applier.get_refactoring_history)


@app.get("/technical-debt/refactoring/stats")
async def refactoring_stats() -> Dict[str, Any]:
    return await call_engine(get_service().applier.get_refactoring_stats)


@app.get("/technical-debt/dependencies/report")
async def dependency_report() -> Dict[str, Any]:
    return await call_engine(get_service().auditor.analyze_dependencies)


@app.get("/technical-debt/dependencies/vulnerabilities")
async def dependency_vulnerabilities() -> List[Dict[str, Any]]:
    return await call_engine(get_service().auditor.check_vulnerabilities)


@app.get("/technical-debt/dependencies/outdated")
async def dependency_outdated() -> List[Dict[str, Any]]:
    return await call_engine(get_service().auditor.check_outdated_packages)


@app.get("/technical-debt/dependencies/analysis")
async def dependency_analysis() -> Dict[str, Any]:
    return await call_engine(get_service().auditor.perform_full_analysis)


def _update_options(body: UpdateBody) -> UpdateOptions:
    fields = body.model_dump()
    fields["strategy"] = UpdateStrategy(fields["strategy"])
    return UpdateOptions(**fields)


@app.post("/technical-debt/dependencies/update")
async def update_dependencies(body: Optional[UpdateBody] = None) -> List[Dict[str, Any]]:
    try:
        options = _update_options(body or UpdateBody())
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    return await call_engine(get_service().updater.update_dependencies, options)


@app.get("/technical-debt/dashboard")
async def dashboard() -> Dict[str, Any]:
    return await call_engine(get_service().dashboard)


if __name__ == "__main__":
    print("Run the app with: uvicorn main:app --reload")
