"""Exercise every MCP tool against a locally running server.

Uses the official MCP Python client for proper protocol handling. Start the
server first (etchant-selector-mcp, default port 8080) with the bundled
catalog, then:

Usage: python scripts/check_local_tools.py [--url http://localhost:8080/mcp]
"""

import argparse
import asyncio
import json
import sys
import traceback

from mcp import ClientSession
from mcp.client.streamable_http import streamablehttp_client

DEFAULT_URL = "http://localhost:8080/mcp"
PASS = 0
FAIL = 0


def has_key(key):
    return lambda r: f"missing '{key}'" if key not in r else None


def key_eq(key, val):
    return lambda r: f"{key}={r.get(key)!r} != {val!r}" if r.get(key) != val else None


def no_error():
    return lambda r: f"error: {r.get('error')}" if "error" in r else None


def top_recommendation(name):
    def check(r):
        recs = r.get("recommendations", [])
        if not recs:
            return "no recommendations"
        if recs[0].get("name") != name:
            return f"top recommendation {recs[0].get('name')!r} != {name!r}"
        return None
    return check


def not_recommended(name):
    def check(r):
        names = [rec.get("name") for rec in r.get("recommendations", [])]
        return f"{name!r} should be vetoed" if name in names else None
    return check


async def call_tool(session: ClientSession, tool_name: str, arguments: dict) -> dict:
    """Call an MCP tool and return parsed result."""
    result = await session.call_tool(tool_name, arguments)
    for item in result.content:
        if item.type == "text":
            try:
                return json.loads(item.text)
            except json.JSONDecodeError:
                return {"_raw_text": item.text}
    return {"_empty": True}


async def check_tool(session: ClientSession, name: str, tool: str, args: dict, checks: list):
    """Run a single tool call with validation checks."""
    global PASS, FAIL
    try:
        result = await call_tool(session, tool, args)
        errors = [err for err in (check_fn(result) for check_fn in checks) if err]
        if errors:
            print(f"  FAIL {name}: {'; '.join(errors)}")
            FAIL += 1
        else:
            print(f"  PASS {name}")
            PASS += 1
        return result
    except Exception as e:
        print(f"  FAIL {name}: Exception: {e}")
        traceback.print_exc()
        FAIL += 1
        return {}


async def main(url: str):
    print("=" * 60)
    print(f"CHECKING MCP TOOLS AGAINST {url}")
    print("=" * 60)

    async with streamablehttp_client(url) as (read_stream, write_stream, _):
        async with ClientSession(read_stream, write_stream) as session:
            await session.initialize()

            tools_result = await session.list_tools()
            tool_names = [t.name for t in tools_result.tools]
            print(f"\nAvailable tools ({len(tool_names)}): {', '.join(tool_names)}")

            # ============================================================
            # etchant_recommend
            # ============================================================
            print("\n--- etchant_recommend ---")

            r = await check_tool(session, "carbon steel by name", "etchant_recommend", {
                "material": "AISI 1045 Carbon Steel",
            }, [no_error(), has_key("recommendations"), top_recommendation("2% Nital")])
            if r.get("summary"):
                print(f"    ({r['summary']['message']})")

            await check_tool(session, "stainless vetoes Keller's", "etchant_recommend", {
                "material": "304 Stainless Steel",
            }, [no_error(), not_recommended("Keller's Reagent")])

            await check_tool(session, "purpose=martensite on 4340", "etchant_recommend", {
                "material": "aisi-4340",
                "purpose": "martensite",
            }, [no_error(), top_recommendation("5% Nital"), key_eq("purpose", "martensite")])

            await check_tool(session, "limit=3", "etchant_recommend", {
                "material": 1,
                "limit": 3,
            }, [no_error(), lambda r: None if len(r.get("recommendations", [])) == 3 else "expected 3"])

            # ============================================================
            # material_search / material_quick_select / etchant_purposes
            # ============================================================
            print("\n--- materials & purposes ---")

            await check_tool(session, "search 'stainless'", "material_search", {
                "query": "stainless",
            }, [no_error(), lambda r: None if r.get("total", 0) >= 1 else "no results"])

            await check_tool(session, "search blank (featured first)", "material_search", {},
                             [no_error(), has_key("results")])

            await check_tool(session, "quick select", "material_quick_select", {},
                             [no_error(), has_key("materials")])

            await check_tool(session, "purposes", "etchant_purposes", {},
                             [lambda r: None if len(r.get("purposes", [])) == 11 else "expected 11 purposes"])

            # ============================================================
            # product_links
            # ============================================================
            print("\n--- product_links ---")

            await check_tool(session, "text: diamond saw", "product_links", {
                "text": "Section with a diamond saw",
            }, [no_error(), key_eq("total", 2)])

            await check_tool(session, "material notes", "product_links", {
                "material": "aisi-1045",
            }, [no_error(), lambda r: None if r.get("total", 0) > 0 else "no links"])

            # ============================================================
            # Edge cases & validation
            # ============================================================
            print("\n--- Edge cases ---")

            await check_tool(session, "unknown purpose", "etchant_recommend", {
                "material": 1,
                "purpose": "hardness",
            }, [has_key("error"), has_key("hint")])

            await check_tool(session, "unknown material", "etchant_recommend", {
                "material": "unobtainium",
            }, [has_key("error")])

            await check_tool(session, "material too long (>500 chars)", "etchant_recommend", {
                "material": "x" * 501,
            }, [has_key("error")])

            await check_tool(session, "product_links without input", "product_links", {},
                             [has_key("error")])

    print("\n" + "=" * 60)
    print(f"RESULTS: {PASS} passed, {FAIL} failed, {PASS + FAIL} total")
    print("=" * 60)

    if FAIL > 0:
        sys.exit(1)


if __name__ == "__main__":
    parser = argparse.ArgumentParser(description="Check MCP tools on a running server")
    parser.add_argument("--url", default=DEFAULT_URL, help="MCP endpoint URL")
    asyncio.run(main(parser.parse_args().url))
