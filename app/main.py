"""
Streamlit Frontend for CoInvest Ledger

The user interface partners use to record money and read the books.

DESIGN PRINCIPLES:
1. Simple, clear interface
2. Clear error messages in simple language
3. Visual feedback for all operations
4. No business logic here: every number comes from the aggregation
   engine and every change goes through the sync coordinator
"""

import asyncio
from datetime import date
from decimal import Decimal, InvalidOperation

import streamlit as st
from pydantic import ValidationError

from coinvest.aggregation import (
    partner_statements,
    portfolio_overview,
    project_statement,
)
from coinvest.config import validate_all_settings
from coinvest.formatting import format_money, format_percent
from coinvest.models import (
    POOL_KEY,
    ExpenseRequest,
    FundingSource,
    FundingSpec,
    LedgerFilter,
    Partner,
    Project,
    ProjectStatus,
    TransactionRequest,
    TransactionType,
)
from coinvest.orchestrator import AppComponents, create_app_components
from coinvest.sync import MutationResult, SyncCoordinator


# Page configuration
st.set_page_config(
    page_title="CoInvest Ledger",
    page_icon="🤝",
    layout="wide",
    initial_sidebar_state="expanded",
)

TYPE_LABELS = {
    TransactionType.INVESTMENT: "💰 Investment",
    TransactionType.INCOME: "📈 Income",
    TransactionType.EXPENSE: "📉 Expense",
    TransactionType.WITHDRAWAL: "🏧 Withdrawal",
}


def run_async(coro):
    """Helper to run async functions in Streamlit."""
    loop = asyncio.new_event_loop()
    asyncio.set_event_loop(loop)
    try:
        return loop.run_until_complete(coro)
    finally:
        loop.close()


@st.cache_resource
def get_components() -> AppComponents:
    """Get or create application components (cached), with the ledger loaded."""
    components = create_app_components(use_storage=True)
    run_async(components.coordinator.load())
    return components


def show_result(result: MutationResult):
    if result.success:
        st.success(result.message)
    else:
        st.error(result.message)


def parse_amount(text: str) -> Decimal:
    """Amount typed by the user; invalid input becomes 0 and is rejected downstream."""
    try:
        return Decimal(text.replace(",", "").strip() or "0")
    except InvalidOperation:
        return Decimal("0")


def main():
    """Main application entry point."""
    components = get_components()
    coordinator = components.coordinator

    st.sidebar.title("🤝 CoInvest Ledger")
    st.sidebar.markdown("---")

    page = st.sidebar.radio(
        "Navigate to:",
        ["📊 Dashboard", "🏗️ Projects", "👥 Partners", "⚙️ Settings"],
        index=0,
    )

    st.sidebar.markdown("---")
    if components.is_remote:
        st.sidebar.success("☁️ Synced with Google Sheets")
        if st.sidebar.button("🔄 Refresh"):
            changed = run_async(coordinator.poll())
            st.sidebar.info(f"{changed} change(s) picked up")
    else:
        st.sidebar.info("💾 Local mode: data is saved on this machine")

    if page == "📊 Dashboard":
        render_dashboard_page(components)
    elif page == "🏗️ Projects":
        render_projects_page(coordinator)
    elif page == "👥 Partners":
        render_partners_page(coordinator)
    elif page == "⚙️ Settings":
        render_settings_page(components)


def render_dashboard_page(components: AppComponents):
    """Totals, ownership, project performance and recent activity."""
    snapshot = components.coordinator.snapshot
    overview = portfolio_overview(snapshot)
    totals = overview.totals

    st.title("📊 Dashboard")

    col1, col2, col3, col4 = st.columns(4)
    col1.metric("Total investment", format_money(totals.total_investment))
    col2.metric("Total income", format_money(totals.total_income))
    col3.metric("Total expense", format_money(totals.total_expense))
    col4.metric("Net profit", format_money(totals.net_profit))

    st.markdown("### 👥 Ownership")
    st.dataframe(
        [
            {
                "Partner": share.name,
                "Invested": format_money(share.invested),
                "Share": format_percent(share.share_percent),
            }
            for share in overview.shares
        ],
        use_container_width=True,
    )

    st.markdown("### 🏗️ Project performance")
    st.dataframe(
        [
            {
                "Project": perf.name,
                "Income": format_money(perf.income),
                "Expense": format_money(perf.expense),
                "Profit": format_money(perf.profit),
            }
            for perf in overview.performance
        ],
        use_container_width=True,
    )

    render_recent(snapshot, overview.recent)

    st.markdown("### 🤖 AI analysis")
    if st.button("Analyze portfolio"):
        with st.spinner("Analyzing..."):
            analysis = run_async(components.analyst.analyze(snapshot))
        if analysis.ai_generated:
            st.markdown(analysis.response)
        else:
            st.warning(analysis.response)


def render_recent(snapshot, recent):
    st.markdown("### 🕒 Recent activity")
    if not recent.items:
        st.info("No transactions yet.")
        return

    for t in recent.items:
        project = snapshot.get_project(t.project_id)
        partner = snapshot.get_partner(t.partner_id) if t.partner_id else None
        who = f" · {partner.name}" if partner else ""
        st.markdown(
            f"{TYPE_LABELS[t.type]} **{format_money(t.amount)}** "
            f"· {project.name if project else t.project_id}{who} "
            f"· {t.date.isoformat()}  \n{t.note}"
        )
    if recent.remaining:
        st.caption(f"... and {recent.remaining} more")


# =============================================================================
# PROJECTS
# =============================================================================

def render_projects_page(coordinator: SyncCoordinator):
    st.title("🏗️ Projects")

    with st.expander("➕ New project"):
        with st.form("new_project"):
            name = st.text_input("Name")
            description = st.text_area("Description")
            status = st.selectbox(
                "Status",
                options=list(ProjectStatus),
                format_func=lambda s: s.value.title(),
                index=list(ProjectStatus).index(ProjectStatus.PLANNING),
            )
            if st.form_submit_button("Create project", type="primary"):
                try:
                    project = Project(name=name, description=description, status=status)
                except ValidationError:
                    st.error("Please enter a project name.")
                else:
                    show_result(run_async(coordinator.add_project(project)))

    snapshot = coordinator.snapshot
    if not snapshot.projects:
        st.info("No projects yet. Create the first one above.")
        return

    project = st.selectbox(
        "Project",
        options=list(snapshot.projects),
        format_func=lambda p: f"{p.name} ({p.status.value})",
    )
    month = st.text_input("Month (YYYY-MM, empty for all time)", value="")

    try:
        statement = project_statement(snapshot, project.id, month=month or None)
    except ValidationError:
        st.error("Month must look like 2024-05.")
        return

    col1, col2, col3, col4 = st.columns(4)
    col1.metric("Income", format_money(statement.income))
    col2.metric("Expense", format_money(statement.expense))
    col3.metric("Net profit", format_money(statement.net_profit))
    col4.metric("ROI", format_percent(statement.roi_percent))

    if statement.partner_investments:
        st.markdown("#### Investment by partner")
        for share in statement.partner_investments:
            st.markdown(
                f"- {share.name}: {format_money(share.invested)} "
                f"({format_percent(share.share_percent)})"
            )

    render_transaction_form(coordinator, project)
    render_recent(snapshot, statement.recent)
    render_transaction_admin(coordinator, project)


def render_funding_inputs(snapshot, project, key: str, allow_split: bool = True):
    """Funding source picker for expenses."""
    modes = ["Central pool", "Partner paid", "Other project"]
    if allow_split:
        modes.append("Split payment")
    mode = st.radio("Paid from", modes, horizontal=True, key=f"{key}_mode")

    if mode == "Partner paid":
        partner = st.selectbox(
            "Partner", list(snapshot.partners), format_func=lambda p: p.name, key=f"{key}_partner",
        )
        return FundingSpec.single(FundingSource.partner(partner.id)) if partner else None

    if mode == "Other project":
        others = [p for p in snapshot.projects if p.id != project.id]
        source = st.selectbox(
            "Project", others, format_func=lambda p: p.name, key=f"{key}_project",
        )
        return FundingSpec.single(FundingSource.project(source.id)) if source else None

    if mode == "Split payment":
        split = {POOL_KEY: parse_amount(st.text_input("Central pool", "0", key=f"{key}_pool"))}
        for partner in snapshot.partners:
            split[partner.id] = parse_amount(
                st.text_input(partner.name, "0", key=f"{key}_split_{partner.id}")
            )
        for other in snapshot.projects:
            if other.id != project.id:
                split[other.id] = parse_amount(
                    st.text_input(f"Project: {other.name}", "0", key=f"{key}_split_{other.id}")
                )
        return FundingSpec.split_between(split)

    return FundingSpec.single(FundingSource.pool())


def render_transaction_form(coordinator: SyncCoordinator, project):
    snapshot = coordinator.snapshot
    st.markdown("#### ✍️ Record a transaction")

    kind = st.selectbox(
        "Type", list(TransactionType), format_func=lambda t: TYPE_LABELS[t], key="new_type",
    )
    amount = parse_amount(st.text_input("Amount", "0", key="new_amount"))
    when = st.date_input("Date", value=date.today(), key="new_date")
    note = st.text_input("Note", key="new_note")

    if kind == TransactionType.EXPENSE:
        funding = render_funding_inputs(snapshot, project, key="new")
        if st.button("Save expense", type="primary") and funding is not None:
            request = ExpenseRequest(
                project_id=project.id, amount=amount, date=when, note=note, funding=funding,
            )
            show_result(run_async(coordinator.record_expense(request)))
        return

    partner = st.selectbox(
        "Partner",
        [None] + list(snapshot.partners),
        format_func=lambda p: "None" if p is None else p.name,
        key="new_partner",
    )
    if st.button("Save", type="primary"):
        request = TransactionRequest(
            project_id=project.id,
            type=kind,
            amount=amount,
            date=when,
            note=note,
            partner_id=partner.id if partner else None,
        )
        show_result(run_async(coordinator.record_direct(request)))


def render_transaction_admin(coordinator: SyncCoordinator, project):
    """Edit or delete one transaction of the project."""
    snapshot = coordinator.snapshot
    transactions = [t for t in snapshot.transactions if t.project_id == project.id]
    if not transactions:
        return

    with st.expander("🛠️ Edit or delete a transaction"):
        target = st.selectbox(
            "Transaction",
            transactions,
            format_func=lambda t: (
                f"{t.date.isoformat()} · {TYPE_LABELS[t.type]} · {format_money(t.amount)} · {t.note}"
            ),
            key="admin_target",
        )

        types = list(TransactionType)
        kind = st.selectbox(
            "Type", types, index=types.index(target.type),
            format_func=lambda t: TYPE_LABELS[t], key="edit_type",
        )
        amount = parse_amount(st.text_input("Amount", str(target.amount), key="edit_amount"))
        when = st.date_input("Date", value=target.date, key="edit_date")
        note = st.text_input("Note", value=target.note, key="edit_note")

        if kind == TransactionType.EXPENSE:
            funding = render_funding_inputs(snapshot, project, key="edit", allow_split=False)
            if st.button("Save changes") and funding is not None:
                request = ExpenseRequest(
                    project_id=project.id, amount=amount, date=when, note=note, funding=funding,
                )
                show_result(run_async(coordinator.edit_expense(target.id, request)))
        else:
            partners = [None] + list(snapshot.partners)
            current = snapshot.get_partner(target.partner_id) if target.partner_id else None
            partner = st.selectbox(
                "Partner",
                partners,
                index=partners.index(current),
                format_func=lambda p: "None" if p is None else p.name,
                key="edit_partner",
            )
            if st.button("Save changes"):
                request = TransactionRequest(
                    project_id=project.id,
                    type=kind,
                    amount=amount,
                    date=when,
                    note=note,
                    partner_id=partner.id if partner else None,
                )
                show_result(run_async(coordinator.record_direct(request, transaction_id=target.id)))

        cascade = False
        if snapshot.linked_sibling(target) is not None:
            st.warning("This entry is one side of a transfer between projects.")
            cascade = st.checkbox("Also delete the entry on the other project", key="cascade")

        if st.button("🗑️ Delete"):
            result = run_async(coordinator.delete_transaction(target.id, cascade_linked=cascade))
            show_result(result)
            if result.success:
                st.rerun()


# =============================================================================
# PARTNERS
# =============================================================================

def render_partners_page(coordinator: SyncCoordinator):
    snapshot = coordinator.snapshot
    st.title("👥 Partner statements")

    col1, col2, col3 = st.columns(3)
    with col1:
        project = st.selectbox(
            "Project",
            [None] + list(snapshot.projects),
            format_func=lambda p: "All projects" if p is None else p.name,
        )
    with col2:
        partner = st.selectbox(
            "Partner",
            [None] + list(snapshot.partners),
            format_func=lambda p: "All partners" if p is None else p.name,
        )
    with col3:
        month = st.text_input("Month (YYYY-MM)", value="")

    try:
        filters = LedgerFilter(
            project_id=project.id if project else None,
            partner_id=partner.id if partner else None,
            month=month or None,
        )
    except ValidationError:
        st.error("Month must look like 2024-05.")
        return

    report = partner_statements(snapshot, filters)
    st.metric("Total shown", format_money(report.displayed_total))

    if not report.statements:
        st.info("No investments match these filters.")

    for statement in report.statements:
        st.markdown(
            f"### {statement.partner.avatar} {statement.partner.name} "
            f"· {format_money(statement.total_invested)} "
            f"· {format_percent(statement.share_percent)} of all capital"
        )
        if not statement.has_data:
            st.caption("No investments in this period.")
            continue
        for project_id, items in statement.by_project.items():
            proj = snapshot.get_project(project_id)
            st.markdown(f"**{proj.name if proj else project_id}**")
            for t in items:
                label = "Paid directly" if t.type == TransactionType.EXPENSE else "Investment"
                st.markdown(f"- {t.date.isoformat()} · {label} · {format_money(t.amount)} · {t.note}")


# =============================================================================
# SETTINGS
# =============================================================================

def render_settings_page(components: AppComponents):
    coordinator = components.coordinator
    st.title("⚙️ Settings")

    st.markdown("### 👥 Partners")
    for partner in coordinator.snapshot.partners:
        col1, col2 = st.columns([4, 1])
        col1.markdown(f"{partner.avatar} **{partner.name}**")
        if col2.button("Delete", key=f"delete_partner_{partner.id}"):
            show_result(run_async(coordinator.delete_partner(partner.id)))

    with st.form("new_partner"):
        name = st.text_input("Name")
        avatar = st.text_input("Avatar (emoji)", value="🧑‍💻")
        color = st.color_picker("Color", value="#818CF8")
        if st.form_submit_button("Add partner"):
            try:
                partner = Partner(name=name, avatar=avatar, color=color)
            except ValidationError:
                st.error("Please enter a partner name.")
            else:
                show_result(run_async(coordinator.add_partner(partner)))

    st.markdown("---")
    st.markdown("### 💾 Backup")
    st.download_button(
        "⬇️ Export data",
        data=coordinator.export_snapshot(),
        file_name=coordinator.export_filename(),
        mime="application/json",
    )

    if coordinator.mode == "remote":
        st.caption("Import is only available in local mode.")
    else:
        uploaded = st.file_uploader("Import backup (replaces all current data)", type=["json"])
        if uploaded and st.button("Import", type="primary"):
            show_result(run_async(coordinator.import_snapshot(uploaded.read())))

    st.markdown("---")
    st.markdown("### Connection Status")

    status = validate_all_settings()
    services = [
        ("Google Sheets (Storage)", "google_sheets"),
        ("Gemini (AI)", "gemini"),
    ]
    for name, key in services:
        if status.get(key, False):
            st.success(f"✅ {name} - Configured")
        else:
            error = status.get(f"{key}_error", "Not configured")
            st.error(f"❌ {name} - {error}")

    if components.is_remote:
        with st.expander("📜 Recent audit events"):
            for event in run_async(components.audit_logger.recent_events(limit=20)):
                st.markdown(
                    f"`{event.timestamp.isoformat(timespec='seconds')}` "
                    f"{event.event_type.value} · {event.description}"
                )

    st.markdown("---")
    st.markdown("### Configuration")
    st.markdown(
        "To connect Google Sheets or Gemini, create a `.env` file with your keys. "
        "See `.env.example` for the required variables."
    )


if __name__ == "__main__":
    main()
