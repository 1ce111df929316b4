import asyncio
import logging
import threading
from datetime import date

import streamlit as st

from config.environment import Environment
from config.feature_flags import is_feature_enabled
from rakgame.core.analytics import (
    calculate_spending,
    games_to_dataframe,
    monthly_chart_data,
    platform_chart_data,
    seller_chart_data,
)
from rakgame.core.error_handler import AppError, RemoteError, describe_error
from rakgame.core.filters import ALL, ANY_CONDITION, GameFilters, filter_and_sort_games
from rakgame.core.firebase_manager import FirebaseManager
from rakgame.core.models import Condition, Currency, GameType, Language, Platform
from rakgame.core.regions import REGIONS, region_display
from rakgame.core.service_container import ServiceContainer
from rakgame.services.storage import ImageUpload
from rakgame.ui.notifications import StreamlitNotifier

Environment.configure_logging()
logger = logging.getLogger(__name__)

st.set_page_config(
    page_title="RakGame",
    page_icon="🎮",
    layout="wide",
    initial_sidebar_state="expanded"
)


class BackgroundLoop:
    """Event loop on a daemon thread; store operations are submitted to it"""

    def __init__(self):
        self.loop = asyncio.new_event_loop()
        self.thread = threading.Thread(target=self.loop.run_forever, name='rakgame-loop', daemon=True)
        self.thread.start()

    def submit(self, coro):
        return asyncio.run_coroutine_threadsafe(coro, self.loop)

    def run(self, coro):
        return self.submit(coro).result()


@st.cache_resource
def get_runtime():
    """One container and loop per server process"""
    if not Environment.validate_config():
        raise RuntimeError("Invalid configuration, see the log for the missing settings")
    manager = FirebaseManager()
    if not manager.initialize():
        raise RuntimeError("Firebase could not be initialized, check the FIREBASE_* settings")
    container = ServiceContainer(manager=manager, notifier=StreamlitNotifier())
    runner = BackgroundLoop()
    runner.submit(container.connectivity.watch(Environment.get_sync_settings()['probe_interval']))
    return container, runner


def run_action(runner: BackgroundLoop, coro) -> bool:
    try:
        runner.run(coro)
        return True
    except RemoteError:
        # already reported by the store
        return False
    except AppError as e:
        title, description = describe_error(e)
        st.error(f"{title}: {description}")
        return False


def render_login(container: ServiceContainer, runner: BackgroundLoop) -> None:
    st.title("RakGame")
    with st.form("login"):
        email = st.text_input("Email")
        password = st.text_input("Password", type="password")
        sign_in = st.form_submit_button("Sign in")
        sign_up = st.form_submit_button("Create account")

    if not (sign_in or sign_up):
        return
    try:
        if sign_in:
            container.firebase_manager.sign_in(email, password)
        else:
            container.firebase_manager.sign_up(email, password)
    except AppError as e:
        title, description = describe_error(e)
        st.error(f"{title}: {description}")
        return
    runner.run(container.start())
    st.rerun()


def render_sidebar(container: ServiceContainer, runner: BackgroundLoop) -> str:
    with st.sidebar:
        st.header("🎮 RakGame")
        pending = container.sync_queue.length()
        if container.connectivity.is_online:
            st.success("Online")
        else:
            st.warning("Offline: changes are saved locally")
        if pending:
            st.caption(f"{pending} change(s) waiting to sync")
            if st.button("Sync now"):
                runner.run(container.connectivity.sync_now())
                st.rerun()

        page = st.radio("Navigate", ["Collection", "Sellers", "Analytics", "Export", "Settings"])

        if st.button("Logout", type="primary"):
            container.stop()
            container.sync_queue.clear()
            container.firebase_manager.sign_out()
            st.rerun()
    return page


def seller_options(container: ServiceContainer) -> dict:
    options = {'': 'No seller'}
    options.update({seller.id: seller.name for seller in container.sellers.records})
    return options


def render_game_form(container: ServiceContainer, runner: BackgroundLoop) -> None:
    sellers = seller_options(container)
    with st.form("add_game", clear_on_submit=True):
        title = st.text_input("Title")
        col1, col2, col3 = st.columns(3)
        platform = col1.selectbox("Platform", [p.value for p in Platform])
        game_type = col2.selectbox("Type", [t.value for t in GameType])
        price = col3.number_input("Price", min_value=0.0, step=1.0)
        purchase_date = st.date_input("Purchase date", value=date.today())
        seller_id = st.selectbox("Seller", list(sellers), format_func=sellers.get)
        region = st.selectbox("Region", [''] + [r.code for r in REGIONS], format_func=lambda c: region_display(c) if c else 'None')
        condition = st.selectbox("Condition", [''] + [c.value for c in Condition])
        notes = st.text_area("Notes")
        upload = st.file_uploader("Cover image", type=['png', 'jpg', 'jpeg', 'webp']) if is_feature_enabled('image_upload') else None
        confirm_duplicate = st.checkbox("Add even if it looks like a duplicate")
        submitted = st.form_submit_button("Add game")

    if not submitted:
        return

    if is_feature_enabled('duplicate_detection') and not confirm_duplicate:
        duplicates = container.games.find_duplicates(title, platform)
        if duplicates:
            st.warning(f"You already own {len(duplicates)} copy(ies) of {title} on {platform}. Tick the box to add it anyway.")
            return

    image = ImageUpload(upload.getvalue(), upload.name, upload.type) if upload else None
    fields = {
        'title': title,
        'platform': platform,
        'type': game_type,
        'price': price,
        'purchase_date': purchase_date,
        'seller_id': seller_id or None,
        'region': region or None,
        'condition': condition or None,
        'notes': notes or None,
    }
    if run_action(runner, container.games.create(fields, image=image)):
        st.rerun()


def render_collection(container: ServiceContainer, runner: BackgroundLoop) -> None:
    st.title("Collection")

    with st.expander("Filters", expanded=False):
        col1, col2, col3 = st.columns(3)
        filters = GameFilters(
            search=col1.text_input("Search"),
            platform=col2.selectbox("Platform", [ALL] + [p.value for p in Platform]),
            type=col3.selectbox("Type", [ALL] + [t.value for t in GameType]),
            region=col1.selectbox("Region", [ALL] + [r.code for r in REGIONS]),
            condition=col2.selectbox("Condition", [ALL, ANY_CONDITION] + [c.value for c in Condition]),
            sort_by=col3.selectbox("Sort by", ['date', 'title', 'price', 'platform']),
            sort_order=col3.radio("Order", ['desc', 'asc'], horizontal=True),
        )

    games = filter_and_sort_games(container.games.records, filters)
    if games:
        st.dataframe(games_to_dataframe(games), use_container_width=True)
    else:
        st.info("No games yet")

    with st.expander("Add game"):
        render_game_form(container, runner)

    if not games:
        return
    labels = {game.id: f"{game.title} ({game.platform})" for game in games}
    selected = st.selectbox("Game", list(labels), format_func=labels.get)
    current = container.games.get(selected)
    if current is None:
        return
    col1, col2 = st.columns(2)
    new_price = col1.number_input("Price", min_value=0.0, value=float(current.price), key=f"price-{selected}")
    if col1.button("Save price"):
        if run_action(runner, container.games.update(selected, {'price': new_price})):
            st.rerun()
    if col2.button("Delete game"):
        if run_action(runner, container.games.delete(selected)):
            st.rerun()


def render_sellers(container: ServiceContainer, runner: BackgroundLoop) -> None:
    st.title("Sellers")
    sellers = container.sellers.records
    for seller in sellers:
        col1, col2 = st.columns([4, 1])
        col1.write(f"**{seller.name}**" + (f"  {seller.url}" if seller.url else ""))
        if col2.button("Delete", key=f"delete-{seller.id}"):
            if run_action(runner, container.sellers.delete(seller.id)):
                st.rerun()

    with st.form("add_seller", clear_on_submit=True):
        name = st.text_input("Name")
        url = st.text_input("URL")
        note = st.text_area("Note")
        if st.form_submit_button("Add seller"):
            if run_action(runner, container.sellers.create({'name': name, 'url': url or None, 'note': note or None})):
                st.rerun()


def render_analytics(container: ServiceContainer, currency: str) -> None:
    st.title("Analytics")
    analytics = calculate_spending(container.games.records, currency)
    col1, col2 = st.columns(2)
    col1.metric("Total spent", f"{analytics.total:,.2f} {analytics.currency}")
    col2.metric("Games", analytics.game_count)

    if analytics.game_count == 0:
        st.info("Add games to see your spending")
        return

    st.subheader("By platform")
    st.dataframe(platform_chart_data(analytics), use_container_width=True)
    st.subheader("By seller")
    st.dataframe(seller_chart_data(analytics), use_container_width=True)
    st.subheader("By month")
    st.dataframe(monthly_chart_data(analytics), use_container_width=True)


def render_export(container: ServiceContainer) -> None:
    st.title("Export")
    formats = ['csv', 'json'] + (['pdf'] if is_feature_enabled('pdf_export') else [])
    fmt = st.radio("Format", formats, horizontal=True)
    if st.button("Prepare export"):
        try:
            export = container.export.export(fmt)
        except AppError as e:
            title, description = describe_error(e)
            st.error(f"{title}: {description}")
            return
        st.download_button("Download", export.content, file_name=export.filename, mime=export.mime_type)


def render_settings(container: ServiceContainer, profile) -> None:
    st.title("Settings")
    currencies = [c.value for c in Currency]
    languages = [l.value for l in Language]
    with st.form("settings"):
        currency = st.selectbox("Currency", currencies, index=currencies.index(profile.currency))
        language = st.selectbox("Language", languages, index=languages.index(profile.language))
        if st.form_submit_button("Save"):
            try:
                container.firebase_manager.update_user_profile({'currency': currency, 'language': language})
                container.notifier.success("Settings saved")
            except Exception as e:
                container.notifier.report_error(e)


def main():
    container, runner = get_runtime()
    notifier = container.notifier

    if not container.firebase_manager.get_current_user():
        render_login(container, runner)
        notifier.flush()
        return

    page = render_sidebar(container, runner)
    try:
        profile = container.firebase_manager.get_user_profile()
    except Exception as e:
        logger.warning(f"Profile unavailable: {str(e)}")
        profile = None
    currency = profile.currency if profile else Environment.get_ui_settings()['default_currency']

    if page == "Collection":
        render_collection(container, runner)
    elif page == "Sellers":
        render_sellers(container, runner)
    elif page == "Analytics":
        render_analytics(container, currency)
    elif page == "Export":
        render_export(container)
    elif page == "Settings" and profile is not None:
        render_settings(container, profile)

    notifier.flush()


if __name__ == "__main__":
    main()
