from datetime import datetime, timezone

import streamlit as st
import pandas as pd
import plotly.express as px

from archery.config import MASTERS_RANKS, ROUND_PRESETS, SNAPSHOT_FOLDER
from archery.errors import NoDataError
from archery.rating.composer import require_archer_rating
from archery.rating.curves import competition_rating, practice_rating
from archery.rating.rankings import (
    best_score_ranking,
    daily_ranking,
    masters_ranking,
    practice_volume_ranking,
)
from archery.storage.snapshot import load_snapshot

# --- Page Configuration ---
st.set_page_config(
    page_title="Archery Rankings",
    page_icon="🏹",
    layout="wide",
    initial_sidebar_state="collapsed"
)

# Static accent colors (theme-independent)
ACCENT_COLORS = {
    "primary": "#FF6B6B",
    "warning": "#F59E0B",
    "info": "#3B82F6",
    "chart_palette": ["#FF6B6B", "#3B82F6", "#10B981", "#F59E0B", "#8B5CF6"],
}

RANK_ICONS = {1: "👑", 2: "🥈", 3: "🥉"}

CHART_CONFIG = {'displayModeBar': False, 'scrollZoom': False}


def rank_label(rank):
    """Rank number with a medal icon for the podium."""
    if pd.isna(rank):
        return ""
    rank = int(rank)
    return f"{RANK_ICONS[rank]} {rank}" if rank in RANK_ICONS else str(rank)


def apply_plotly_style(fig):
    fig.update_layout(
        paper_bgcolor='rgba(0,0,0,0)',
        plot_bgcolor='rgba(0,0,0,0)',
        font=dict(family="Inter, sans-serif"),
        margin=dict(l=20, r=20, t=30, b=20),
    )
    return fig


# --- Data Loading Functions ---
@st.cache_resource(ttl=3600)
def load_repository(folder):
    """Load the latest snapshot into an in-memory repository."""
    return load_snapshot(folder)


@st.cache_data(ttl=3600)
def load_masters(folder, as_of):
    result = masters_ranking(load_repository(folder), limit=100, now=as_of)
    return result.to_frame(), result.meta


@st.cache_data(ttl=3600)
def load_daily(folder, day):
    return daily_ranking(load_repository(folder), date=day, limit=100).to_frame()


@st.cache_data(ttl=3600)
def load_best_scores(folder, round_type, distance_label):
    return best_score_ranking(
        load_repository(folder), round_type=round_type, distance_label=distance_label, limit=100
    ).to_frame()


@st.cache_data(ttl=3600)
def load_practice(folder, period, as_of):
    return practice_volume_ranking(load_repository(folder), period=period, limit=100, now=as_of).to_frame()


def show_leaderboard(df, column_config, empty_message):
    if df.empty:
        st.info(empty_message)
        return
    df = df.copy()
    df['rank'] = df['rank'].apply(rank_label)
    st.dataframe(
        df[list(column_config)],
        width='stretch',
        hide_index=True,
        column_config=column_config
    )


# --- Main App ---
def main():
    st.title("🏹 Archery Rankings")

    folder = str(SNAPSHOT_FOLDER)
    repository = load_repository(folder)
    if not repository.get_all_users():
        st.warning(f"No snapshot data found in {folder}.")
        return

    # Rankings are computed as of the top of the current hour so the cache stays warm
    as_of = datetime.now(timezone.utc).replace(minute=0, second=0, microsecond=0)

    tab_masters, tab_daily, tab_best, tab_practice, tab_rating = st.tabs(
        ["🏆 Masters", "📅 Daily", "🎯 Best Score", "💪 Practice", "👤 Archer Rating"]
    )

    # --- Tab 1: Masters ---
    with tab_masters:
        df_masters, meta = load_masters(folder, as_of)
        st.caption(f"Rounds since {meta['window_start']}. Competition 1.5x, club 1.2x, personal 1.0x.")
        show_leaderboard(
            df_masters,
            {
                "rank": st.column_config.TextColumn("Rank"),
                "user_name": st.column_config.TextColumn("Archer"),
                "masters_rank_name": st.column_config.TextColumn("Tier"),
                "masters_rating": st.column_config.NumberColumn("Points", format="%d"),
                "handicap": st.column_config.NumberColumn("Handicap", format="%d"),
                "adjusted_rating": st.column_config.NumberColumn("Adjusted", format="%d"),
                "round_count": st.column_config.NumberColumn("Rounds", format="%d"),
            },
            "No completed rounds in the Masters window.",
        )

        if not df_masters.empty:
            with st.expander("📊 Tier Distribution", expanded=False):
                tier_counts = (
                    df_masters.groupby(['masters_rank', 'masters_rank_name'])
                    .size()
                    .reset_index(name='archers')
                    .sort_values('masters_rank')
                )
                fig_tiers = px.bar(
                    tier_counts,
                    x='masters_rank_name',
                    y='archers',
                    labels={'masters_rank_name': 'Tier', 'archers': 'Archers'},
                    color_discrete_sequence=[ACCENT_COLORS["primary"]]
                )
                apply_plotly_style(fig_tiers)
                fig_tiers.update_layout(showlegend=False, height=300)
                st.plotly_chart(fig_tiers, use_container_width=True, config=CHART_CONFIG)

        with st.expander("Tier Table", expanded=False):
            st.dataframe(
                pd.DataFrame(MASTERS_RANKS)[['rank', 'name', 'min_points']],
                width='stretch',
                hide_index=True
            )

    # --- Tab 2: Daily ---
    with tab_daily:
        day = st.date_input("Date", value=as_of.date(), key="daily_date")
        show_leaderboard(
            load_daily(folder, day),
            {
                "rank": st.column_config.TextColumn("Rank"),
                "user_name": st.column_config.TextColumn("Archer"),
                "score": st.column_config.NumberColumn("Score", format="%d"),
                "handicap": st.column_config.NumberColumn("Handicap", format="%d"),
                "adjusted_score": st.column_config.NumberColumn("Adjusted", format="%d"),
                "distance_label": st.column_config.TextColumn("Distance"),
                "round_type": st.column_config.TextColumn("Type"),
            },
            f"No completed rounds on {day:%Y-%m-%d}.",
        )

    # --- Tab 3: Best Score ---
    with tab_best:
        col1, col2 = st.columns(2)
        with col1:
            round_type = st.selectbox("Type", ["practice", "competition", "all"], key="best_type")
        with col2:
            distance = st.selectbox("Distance", ["Any"] + list(ROUND_PRESETS), key="best_distance")
        df_best = load_best_scores(folder, round_type, None if distance == "Any" else distance)
        show_leaderboard(
            df_best,
            {
                "rank": st.column_config.TextColumn("Rank"),
                "user_name": st.column_config.TextColumn("Archer"),
                "best_score": st.column_config.NumberColumn("Best", format="%d"),
                "total_x": st.column_config.NumberColumn("X", format="%d"),
                "total_10": st.column_config.NumberColumn("10+X", format="%d"),
                "distance_label": st.column_config.TextColumn("Distance"),
                "date": st.column_config.TextColumn("Date"),
            },
            "No rounds match this filter.",
        )

    # --- Tab 4: Practice Volume ---
    with tab_practice:
        period = st.radio("Period", ["week", "month"], index=1, horizontal=True, key="practice_period")
        df_practice = load_practice(folder, period, as_of)
        show_leaderboard(
            df_practice,
            {
                "rank": st.column_config.TextColumn("Rank"),
                "user_name": st.column_config.TextColumn("Archer"),
                "total_arrows": st.column_config.NumberColumn("Arrows", format="%d"),
                "session_count": st.column_config.NumberColumn("Sessions", format="%d"),
            },
            f"No completed rounds this {period}.",
        )
        if not df_practice.empty:
            fig_volume = px.bar(
                df_practice.head(20),
                x='user_name',
                y='total_arrows',
                labels={'user_name': 'Archer', 'total_arrows': 'Arrows'},
                color_discrete_sequence=[ACCENT_COLORS["info"]]
            )
            apply_plotly_style(fig_volume)
            fig_volume.update_layout(height=320)
            st.plotly_chart(fig_volume, use_container_width=True, config=CHART_CONFIG)

    # --- Tab 5: Archer Rating ---
    with tab_rating:
        users = sorted(repository.get_all_users(), key=lambda u: u.name)
        selected = st.selectbox(
            "Archer",
            users,
            format_func=lambda u: u.nickname or u.name,
            key="rating_archer"
        )
        if selected is not None:
            try:
                rating = require_archer_rating(repository, selected.id).to_record()
            except NoDataError:
                st.info("No rating yet: this archer has no completed rounds.")
            else:
                col1, col2, col3 = st.columns(3)
                col1.metric("Rating", f"{rating['rating']:.2f}", rating['rank'])
                col2.metric("Competition", f"{rating['competition_rating']:.2f}",
                            f"{rating['competition_count']} rounds")
                col3.metric("Practice", f"{rating['practice_rating']:.2f}",
                            f"{rating['practice_count']} rounds")

        with st.expander("📈 Rating Curves", expanded=False):
            scores = list(range(0, 721, 10))
            df_curves = pd.DataFrame({
                'score': scores + scores,
                'rating': [competition_rating(s) for s in scores] + [practice_rating(s) for s in scores],
                'kind': ['competition'] * len(scores) + ['practice'] * len(scores),
            })
            fig_curves = px.line(
                df_curves,
                x='score',
                y='rating',
                color='kind',
                color_discrete_sequence=ACCENT_COLORS["chart_palette"]
            )
            apply_plotly_style(fig_curves)
            fig_curves.update_layout(height=320, xaxis_title="Score", yaxis_title="Rating")
            st.plotly_chart(fig_curves, use_container_width=True, config=CHART_CONFIG)


if __name__ == "__main__":
    main()
