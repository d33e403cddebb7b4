"""
Shared fixtures: sample portal pages and a local aiohttp app that plays the
portal's APEX endpoints.
"""

import json
import logging
from typing import Any, Dict

import pytest
from aiohttp import web

from config_schemas import PortalConfig

INSTANCE = "123456"
STEP = "11"

HOME_PAGE = f"""
<html><body>
<form>
  <input type="hidden" name="p_flow_id" value="100">
  <input type="hidden" name="p_flow_step_id" value="1">
  <input type="hidden" name="p_instance" value="{INSTANCE}">
</form>
</body></html>
"""

SEARCH_PAGE = r"""
<html><body>
<form id="wwvFlowForm">
  <input type="hidden" name="p_flow_id" value="100">
  <input type="hidden" name="p_flow_step_id" value="11">
  <input type="hidden" name="p_instance" value="123456">
  <input type="hidden" name="p_page_submission_id" value="SUBMISSION1">
  <input type="hidden" id="pSalt" value="SALT42">
  <input type="hidden" name="pPageItemsRowVersion" value="">
  <input type="hidden" id="pPageItemsProtected" value="PROTECTED9">
  <input type="hidden" name="P0_ORDER_PRICE" value="0">
  <input type="hidden" name="P0_BANNER" value="banner.png">
  <input type="hidden" name="P0_LINK_BANNER" value="">
  <input type="hidden" name="P0_CURRENTDATE" value="1403/01/01">
  <input type="hidden" name="P0_MT" value="MT1">
  <input type="hidden" name="P0_CURRENT_PAGE_ID" value="11">
  <input type="hidden" data-for="P0_CURRENT_PAGE_ID" value="CK_PAGE">
  <input type="hidden" name="P0_ORDER_ID" value="">
  <input type="hidden" data-for="P0_ORDER_ID" value="CK_ORDER">
  <input type="hidden" name="P0_TOOLTIP_BANNER" value="tip">
  <input type="hidden" data-for="P0_TOOLTIP_BANNER" value="CK_TIP">

  <div class="t-Form-fieldContainer">
    <span id="P11_COMPANY_CODE"></span>
    <div id="R999_ir" class="a-IRR-container">
      <input type="hidden" id="R999_worksheet_id" value="WS1">
      <input type="hidden" id="R999_report_id" value="RP1">
    </div>
  </div>
</form>
<script>
apex.jQuery('#R999_ir').interactiveReport({"regionId":"R999","ajaxIdentifier":"IR/AJAX","pageItems":"#P11_SINGLE_SEARCH"});
</script>
<script>
apex.jQuery('#G1_ig').interactiveGrid({"config":{"regionId":"G1","ajaxIdentifier":"GRID/AJAX","ajaxColumns":["C1","C2"]},"savedReports":[{"id":"777","name":"Primary"}]});
</script>
<script>
apex.da.initDaEventList = function(){
apex.da.gEventList=[{"name":"search","triggeringElement":"P11_SINGLE_SEARCH","bindType":"bind","actionList":[{"eventResult":true,"action":"NATIVE_REFRESH","affectedElements":"P11_RESULT","ajaxIdentifier":"UkVH\u002FSEARCH"}]},{"name":"footer","actionList":[{"affectedElements":"P11_FOOTER","ajaxIdentifier":"Rk9P\u002FTEx"}]}];
};
</script>
</body></html>
"""

NOTICE_PAGE = """
<html><body>
  <span id="P28_TITLE_DISPLAY">  آگهی   تاسیس </span>
  <span id="P28_REFERENCENUMBER_DISPLAY">140230401234567890</span>
  <span id="P28_INDIKATORNUMBER_DISPLAY">1402/123</span>
  <span id="P28_SABTDATE_DISPLAY">1402/05/01</span>
  <span id="P28_NEWSPAPERNO_DISPLAY">22850</span>
  <span id="P28_NEWSPAPERDATE_DISPLAY">1402/05/10</span>
  <span id="P28_PAGENUMBER_DISPLAY">12</span>
  <span id="P28_HCNEWSSTAGE_DISPLAY">اول</span>
  <span id="P28_COMPANYNAME_DISPLAY">ایمن سپهر تجارت اروند</span>
  <span id="P28_SABTNATIONALID_DISPLAY">14007654321</span>
  <span id="P28_SABTNUMBER_DISPLAY">6686</span>
  <span id="P28_AGAHI_SADER_KONANDE_DISPLAY"></span>
  <div id="R55" aria-label="متن آگهی:"></div>
  <div region-id="R55">
    <p>آگهی تأسیس شرکت ایمن سپهر تجارت اروند (با مسئولیت محدود)</p>
    <p>به شماره ثبت 6686</p>
  </div>
</body></html>
"""


def company_report(start: int, count: int) -> str:
    """Interactive report HTML with ``count`` company rows numbered from ``start``"""
    rows = "".join(
        f'<tr>'
        f'<td headers="ID">{n}</td>'
        f'<td headers="COMPANY_NAME"><a href="/ords/r/rrs/rrs-front/company?id={n}">شرکت {n}</a></td>'
        f'<td headers="NATIONALCODE">{10000000000 + n}</td>'
        f'<td headers="SABTNO">{500 + n}</td>'
        f'<td headers="POSTALCODE"></td>'
        f'</tr>'
        for n in range(start, start + count)
    )
    return (
        '<table class="a-IRR-table"><tr>'
        '<th id="ID">ID</th><th id="COMPANY_NAME">Name</th>'
        f'</tr>{rows}</table>'
    )


def grid_response(count: int) -> Dict[str, Any]:
    return {
        "regions": [{
            "id": "G1",
            "fetchedData": {
                "values": [
                    [str(n), f'<a href="/ords/r/rrs/rrs-front/notice?id={n}">view</a>']
                    for n in range(1, count + 1)
                ],
            },
        }],
    }


@pytest.fixture
def search_page_html() -> str:
    return SEARCH_PAGE


@pytest.fixture
def notice_page_html() -> str:
    return NOTICE_PAGE


@pytest.fixture
def portal_state() -> Dict[str, Any]:
    """Knobs and request log of the fake portal"""
    return {
        "total_companies": 3,
        "notices": 2,
        "home_gets": 0,
        "search_gets": 0,
        "accept_posts": [],
        "ajax_posts": [],
        "accept_failures": 0,      # 500s before the accept succeeds
        "accept_status": None,     # fixed error status for every accept
        "expire_refine": 0,        # refine calls answered with session ended
        "expire_worksheet_at": None,  # listing call number answered once with session ended
        "worksheet_calls": 0,
        "broken_notice": None,     # notice id answered with 404
    }


@pytest.fixture
def portal_app(portal_state):
    """Factory for the fake portal application"""

    def make_app() -> web.Application:
        state = portal_state
        session_counter = {"n": 0}

        async def home(request):
            state["home_gets"] += 1
            session_counter["n"] += 1
            response = web.Response(text=HOME_PAGE, content_type="text/html")
            response.set_cookie("ORA_WWV_APP_100", f"session{session_counter['n']}")
            return response

        async def search_page(request):
            state["search_gets"] += 1
            return web.Response(text=SEARCH_PAGE, content_type="text/html")

        async def accept(request):
            form = await request.post()
            state["accept_posts"].append({
                "form": dict(form),
                "cookie": request.headers.get("Cookie"),
                "path": request.path_qs,
            })
            if state["accept_status"]:
                return web.Response(status=state["accept_status"], text="error")
            if state["accept_failures"] > 0:
                state["accept_failures"] -= 1
                return web.Response(status=500, text="temporarily unavailable")
            return web.json_response({"redirectURL": f"/ords/r/rrs/rrs-front/big_data11?session={INSTANCE}"})

        async def ajax(request):
            form = await request.post()
            state["ajax_posts"].append(dict(form))
            p_json = json.loads(form.get("p_json", "{}"))

            if form.get("p_widget_name") == "worksheet":
                state["worksheet_calls"] += 1
                if state["worksheet_calls"] == state["expire_worksheet_at"]:
                    return web.json_response({"error": "Your session has ended.", "addInfo": ""})
                mod = form["p_widget_action_mod"]
                min_row = int(mod.split("pgR_min_row=")[1].split("max_rows=")[0])
                per_page = int(form["p_widget_num_return"])
                remaining = max(0, state["total_companies"] - (min_row - 1))
                return web.Response(text=company_report(min_row, min(per_page, remaining)),
                                    content_type="text/html")

            if "regions" in p_json:
                return web.json_response(grid_response(state["notices"]))

            if state["expire_refine"] > 0:
                state["expire_refine"] -= 1
                return web.json_response({"error": "Your session has ended.", "addInfo": ""})
            return web.json_response({"item": []})

        async def notice(request):
            if request.query.get("id") == state["broken_notice"]:
                return web.Response(status=404, text="not found")
            return web.Response(text=NOTICE_PAGE, content_type="text/html")

        app = web.Application()
        app.router.add_get("/ords/r/rrs/rrs-front/home", home)
        app.router.add_get("/ords/r/rrs/rrs-front/big_data11", search_page)
        app.router.add_get("/ords/r/rrs/rrs-front/notice", notice)
        app.router.add_post("/ords/wwv_flow.accept", accept)
        app.router.add_post("/ords/wwv_flow.ajax", ajax)
        return app

    return make_app


def portal_config(server, tmp_path, **overrides) -> PortalConfig:
    """Config pointing at a running TestServer with no waiting between attempts"""
    values = dict(
        base_url=f"http://{server.host}:{server.port}",
        output_dir=str(tmp_path),
        retry_base_delay=0,
        delay_between_requests=0,
        per_page=2,
    )
    values.update(overrides)
    return PortalConfig(**values)


@pytest.fixture
def make_config():
    return portal_config


@pytest.fixture
def restore_logging():
    """setup_logging replaces the root handlers; put pytest's back afterwards"""
    root = logging.getLogger()
    handlers, level = root.handlers[:], root.level
    yield
    for handler in root.handlers:
        if handler not in handlers:
            handler.close()
    root.handlers = handlers
    root.setLevel(level)
