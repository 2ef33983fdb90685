"""
Niche Finder — dashboard for running research and browsing stored reports.
Run with: streamlit run niche_finder/dashboard.py

Read-only over the database, except for the research form which runs the
full scrape + analyze pipeline for a keyword.
"""

import streamlit as st
import plotly.graph_objects as go
import pandas as pd

import sys
import os
sys.path.insert(0, os.path.join(os.path.dirname(__file__), ".."))

from niche_finder.config import (
    DASHBOARD_USERNAME, DASHBOARD_PASSWORD, DATABASE_PATH,
    DEFAULT_MAX_APPS, DEFAULT_REVIEWS_PER_APP, configure_logging,
)
from niche_finder.database import Storage
from niche_finder.errors import NoApplicationsFound, NoEmbeddingsAvailable
from niche_finder.llm_client import LLMClient
from niche_finder.models import normalize_keyword
from niche_finder.pipeline import run_full_pipeline
from niche_finder.scraper import APPLE, GOOGLE_PLAY

# ============================================================
# PAGE CONFIG
# ============================================================
st.set_page_config(
    page_title="Niche Finder",
    page_icon="◆",
    layout="wide",
    initial_sidebar_state="expanded",
)

CUSTOM_CSS = """
<style>
footer {visibility: hidden;}
#MainMenu {visibility: hidden;}
:root {
    --bg-elevated: #2d2b26;
    --border: rgba(255,235,205,0.08);
    --accent: #d97757;
}
[data-testid="stMetric"] {
    background: var(--bg-elevated);
    border: 1px solid var(--border); border-radius: 14px; padding: 18px 22px;
}
.stButton > button { border-radius: 10px; font-weight: 600; }
.streamlit-expanderHeader { font-weight: 500; border-radius: 10px; }
</style>
"""
st.markdown(CUSTOM_CSS, unsafe_allow_html=True)


def apply_chart_style(fig):
    fig.update_layout(
        font=dict(family="Inter, sans-serif", color="#9c9588"),
        paper_bgcolor="rgba(0,0,0,0)", plot_bgcolor="rgba(0,0,0,0)",
        title_font=dict(size=14, color="#e8e0d5"),
        margin=dict(l=40, r=20, t=45, b=35),
    )
    return fig


# ============================================================
# SHARED RESOURCES (built once per server process)
# ============================================================
@st.cache_resource
def get_storage() -> Storage:
    configure_logging()
    return Storage(DATABASE_PATH)


@st.cache_resource
def get_llm() -> LLMClient:
    return LLMClient()


# ============================================================
# LOGIN
# ============================================================
def render_login():
    st.markdown("## ◆ Niche Finder")
    st.caption("Find what competing apps' users are still missing")
    col1, col2, col3 = st.columns([1.3, 1, 1.3])
    with col2:
        with st.form("login_form"):
            username = st.text_input("Username", placeholder="Username", label_visibility="collapsed")
            password = st.text_input("Password", type="password", placeholder="Password",
                                     label_visibility="collapsed")
            if st.form_submit_button("Sign in", use_container_width=True, type="primary"):
                if username == DASHBOARD_USERNAME and password == DASHBOARD_PASSWORD:
                    st.session_state.authenticated = True
                    st.rerun()
                else:
                    st.error("Invalid credentials.")


# ============================================================
# RESEARCH FORM
# ============================================================
def render_research_form():
    st.sidebar.markdown("**New research**")
    with st.sidebar.form("research_form"):
        keyword = st.text_input("Keyword", placeholder="habit tracker")
        store = st.selectbox("Store", [APPLE, GOOGLE_PLAY],
                             format_func=lambda s: "Apple App Store" if s == APPLE else "Google Play")
        max_apps = st.number_input("Apps", min_value=1, max_value=20, value=DEFAULT_MAX_APPS)
        reviews_per_app = st.number_input("Reviews per app", min_value=10, max_value=500,
                                          value=DEFAULT_REVIEWS_PER_APP, step=10)
        submitted = st.form_submit_button("Run research", use_container_width=True, type="primary")

    if submitted and keyword.strip():
        with st.spinner(f"Scraping and analyzing '{keyword}', this can take several minutes..."):
            try:
                outcome = run_full_pipeline(
                    keyword, get_storage(), get_llm(),
                    max_apps=int(max_apps), reviews_per_app=int(reviews_per_app), store=store,
                )
            except (NoApplicationsFound, NoEmbeddingsAvailable) as e:
                st.sidebar.error(str(e))
                return
        result = outcome["analysis"]
        if result.all_failed:
            st.sidebar.error("Every group failed analysis. Check the logs.")
        else:
            st.sidebar.success(f"{len(result.analyses)} of {result.groups_analyzed} groups analyzed.")
        st.session_state.selected_keyword = result.keyword
        st.session_state.selected_group = None


# ============================================================
# REPORT PAGES
# ============================================================
def render_report_list():
    st.markdown("## Reports")
    reports = get_storage().list_reports()
    if not reports:
        st.info("No reports yet. Run a research from the sidebar.")
        return

    df = pd.DataFrame(reports)
    df["last_analyzed"] = pd.to_datetime(df["last_analyzed"]).dt.strftime("%Y-%m-%d %H:%M")
    st.dataframe(df, use_container_width=True, hide_index=True)

    choice = st.selectbox("Open report", [r["keyword"] for r in reports])
    if st.button("Open", type="primary"):
        st.session_state.selected_keyword = choice
        st.session_state.selected_group = None
        st.rerun()


def chart_reviews_per_group(analyses):
    fig = go.Figure(go.Bar(
        x=[a.summary.approach_name for a in analyses],
        y=[a.review_count for a in analyses],
        marker_color="#d97757",
        text=[len(a.micro_niches) for a in analyses],
        texttemplate="%{text} niches", textposition="outside",
    ))
    fig.update_layout(title="Reviews analyzed per sub-category", height=340, yaxis_title="Reviews")
    apply_chart_style(fig)
    st.plotly_chart(fig, use_container_width=True)


def render_keyword_report(keyword: str):
    storage = get_storage()
    analyses = storage.get_analyses(keyword)
    if st.button("← All reports"):
        st.session_state.selected_keyword = None
        st.rerun()

    st.markdown(f"## {keyword}")
    if not analyses:
        st.warning("No analysis stored for this keyword.")
        return

    all_apps = {name for a in analyses for name in a.apps}
    report = storage.get_market_report(keyword)
    c1, c2, c3 = st.columns(3)
    c1.metric("Sub-categories", len(analyses))
    c2.metric("Apps", len(all_apps))
    c3.metric("Reviews", sum(a.review_count for a in analyses))
    if report:
        st.caption(f"Scraped {report.apps_scraped} apps on {report.scraped_at:%Y-%m-%d}")

    chart_reviews_per_group(analyses)

    for idx, analysis in enumerate(analyses):
        with st.container(border=True):
            st.markdown(f"**{idx + 1}. {analysis.summary.approach_name}**")
            shown = ", ".join(analysis.apps[:2]) + ("..." if len(analysis.apps) > 2 else "")
            st.caption(f"Analyzed: {shown} · {len(analysis.micro_niches)} micro-niches")
            if st.button("View details", key=f"group_{idx}"):
                st.session_state.selected_group = idx
                st.rerun()


def render_group_detail(keyword: str, group_index: int):
    analyses = get_storage().get_analyses(keyword)
    if group_index >= len(analyses):
        st.session_state.selected_group = None
        st.rerun()
    analysis = analyses[group_index]

    if st.button(f"← {keyword}"):
        st.session_state.selected_group = None
        st.rerun()

    summary = analysis.summary
    st.markdown(f"## {summary.approach_name}")
    for app in get_storage().get_apps_by_names(analysis.apps):
        st.markdown(f"- {app['name']} (`{app['app_store_id']}`)")
    st.caption(f"{summary.apps_analyzed} apps · {summary.total_reviews} reviews")

    col1, col2 = st.columns(2)
    col1.success(f"**Does well:** {summary.strengths}")
    col2.error(f"**Core limitation:** {summary.core_limitation}")

    for niche in analysis.micro_niches:
        with st.expander(niche.niche_name, expanded=True):
            st.markdown(f"**Target user:** {niche.target_user}")
            st.markdown(f"**Problem:** {niche.core_problem}")
            if niche.example_review:
                st.markdown(f"> {niche.example_review}")
            st.markdown(f"**Solution:** {niche.solution}")
            st.markdown(f"**Why it's different:** {niche.why_this_is_different}")
            if niche.opportunity_score is not None:
                st.caption(f"Opportunity score: {niche.opportunity_score:g}")


# ============================================================
# MAIN
# ============================================================
def main():
    # Login is per browser session; never share it through a cached resource
    if "authenticated" not in st.session_state:
        st.session_state.authenticated = False

    if not st.session_state.authenticated:
        render_login()
        return

    render_research_form()

    keyword = st.session_state.get("selected_keyword")
    group = st.session_state.get("selected_group")
    if keyword and group is not None:
        render_group_detail(normalize_keyword(keyword), group)
    elif keyword:
        render_keyword_report(normalize_keyword(keyword))
    else:
        render_report_list()


if __name__ == "__main__":
    main()
