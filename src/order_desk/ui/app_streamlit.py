"""
Streamlit UI for the Order Desk.

Features:
- Tabbed interface for New Order, Barry / Gawy dashboards, Accounts,
  Distribution, Uploads and Settings
- Inline-editable order grid (each edited cell is recomputed and saved)
- Bulk status change, order placement, delete, merge and shipping sheets
- WhatsApp deep links for confirmations and distribution notices
"""
import streamlit as st
import pandas as pd
import sys
from pathlib import Path
from datetime import datetime

# Add src to path for imports
src_path = Path(__file__).parent.parent.parent
if str(src_path) not in sys.path:
    sys.path.insert(0, str(src_path))

from order_desk.config.settings import get_settings, configure_logging
from order_desk.engine.aggregation import account_report, distribution_report, grand_totals
from order_desk.engine.errors import OrderDeskError
from order_desk.engine.models import Channel, OrderStatus, Tier, UploadStatus
from order_desk.services import build_services
from order_desk.services.notifications import whatsapp_link, order_placed_message, in_distribution_message
from order_desk.services.reconciliation import NOTIFY_IN_DISTRIBUTION


st.set_page_config(
    page_title="Order Desk",
    layout="wide",
    initial_sidebar_state="expanded"
)


@st.cache_resource
def get_services():
    """Get cached service container."""
    configure_logging()
    return build_services(get_settings())


try:
    services = get_services()
    settings_doc = services.settings_service.load()
except OrderDeskError as e:
    st.error(f"System Error: {e}")
    st.stop()

prefix = services.settings.phone_country_prefix

# Editable grid column → order field
EDITABLE_COLUMNS = {
    'Status': 'status',
    'Account': 'account_name',
    'Pieces': 'pieces',
    'Total SR': 'gross_amount',
    'Discount SR': 'discount1',
    'Discount 2 SR': 'discount2',
    'Discount 3 SR': 'discount3',
    'Coupon SR': 'coupon',
    'Paid To Website': 'paid_to_source',
    'Extra SR': 'extra_amount',
    'Losts': 'loss_amount',
    'Deposit EGP': 'deposit_paid',
    'Paid After Delivery': 'paid_after_delivery',
}


def order_rows(orders) -> pd.DataFrame:
    rows = []
    for order in orders:
        fin = order.financials
        rows.append({
            'ID': order.id,
            'Code': order.order_id,
            'Sheet': order.sheet_code,
            'Customer': order.customer_name,
            'Type': order.tier.value,
            'Status': order.status.value,
            'Account': order.account_name,
            'Pieces': order.inputs.pieces,
            'Total SR': order.inputs.gross_amount,
            'Discount SR': order.inputs.discount1,
            'Discount 2 SR': order.inputs.discount2,
            'Discount 3 SR': order.inputs.discount3,
            'Coupon SR': order.inputs.coupon,
            'Paid To Website': order.inputs.paid_to_source,
            'Extra SR': order.inputs.extra_amount,
            'Losts': order.inputs.loss_amount,
            'Deposit EGP': order.inputs.deposit_paid,
            'Paid After Delivery': order.inputs.paid_after_delivery,
            'Rate': fin.conversion_rate if fin else None,
            'Total EGP': fin.total_amount if fin else None,
            'Outstanding': fin.outstanding_amount if fin else None,
        })
    return pd.DataFrame(rows)


def show_notifications(outcome):
    if NOTIFY_IN_DISTRIBUTION in outcome.notifications:
        message = in_distribution_message(outcome.order, settings_doc)
        link = whatsapp_link(outcome.order.phone, message, prefix)
        if link:
            st.link_button(f"📲 Notify {outcome.order.customer_name} ({outcome.order.order_id})", link)


def save_grid_edits(original: pd.DataFrame, edited: pd.DataFrame):
    """Push each changed cell through the reconciliation updater."""
    changed = failed = 0
    for (_, before), (_, after) in zip(original.iterrows(), edited.iterrows()):
        for column, field_name in EDITABLE_COLUMNS.items():
            if before[column] == after[column]:
                continue
            try:
                outcome = services.orders.update_field(before['ID'], field_name, after[column])
            except OrderDeskError as e:
                st.error(f"{before['Code']} · {column}: {e}")
                failed += 1
                continue
            if outcome.success:
                changed += 1
                show_notifications(outcome)
            else:
                st.error(f"{before['Code']} · {column} not saved: {outcome.error}")
                failed += 1
    return changed, failed


# ============================================================================
# SIDEBAR: Rates
# ============================================================================
with st.sidebar:
    st.header("💱 Current Rates")
    rules = services.settings_service.rules()
    with st.container(border=True):
        for channel in Channel:
            below, above = rules.wholesale_rates(channel)
            st.markdown(f"**{channel.label}**")
            st.caption(f"Retail: {rules.retail_rate(channel)} · Wholesale: {below} / {above} "
                       f"(threshold {rules.wholesale_threshold:g} SR)")
    counts = services.uploads.status_counts()
    if counts.get(UploadStatus.UNDER_APPROVAL.value):
        st.warning(f"📥 {counts[UploadStatus.UNDER_APPROVAL.value]} uploads awaiting approval")
    unreadable = services.orders.unreadable_orders()
    if unreadable:
        with st.expander(f"⚠️ {len(unreadable)} orders could not be read"):
            for doc_id, reason in unreadable.items():
                st.caption(f"{doc_id}: {reason}")


# ============================================================================
# MAIN CONTENT: TABBED INTERFACE
# ============================================================================
st.title("Order Desk")
st.caption(f"v1.0 | {datetime.now().strftime('%Y-%m-%d')}")

tab_new, tab_barry, tab_gawy, tab_accounts, tab_dist, tab_uploads, tab_settings = st.tabs(
    ["➕ New Order", "🅱️ Barry", "🇬 Gawy", "📒 Accounts", "🚚 Distribution", "📥 Uploads", "⚙️ Settings"]
)


# ============================================================================
# TAB 1: NEW ORDER
# ============================================================================
with tab_new:
    prefill = st.session_state.get('prefill') or {}
    if prefill:
        st.info(f"Completing order from approved upload for {prefill.get('customer_name')}")

    customers = services.orders.list_customers()
    col1, col2 = st.columns([1.8, 1.2], gap="large")

    with col1:
        with st.expander("👤 New Customer"):
            c_name = st.text_input("Name", key="new_customer_name")
            c_phone = st.text_input("Phone", key="new_customer_phone")
            c_tier = st.selectbox("Client Type", [t.value for t in Tier], key="new_customer_tier")
            if st.button("Create Customer"):
                try:
                    customer = services.orders.create_customer(c_name, c_phone, c_tier)
                    st.success(f"Created {customer['customerCode']}")
                    st.rerun()
                except OrderDeskError as e:
                    st.error(str(e))

        labels = {c['id']: f"{c.get('customerCode', '')} | {c.get('name', '')}" for c in customers}
        ids = list(labels)
        default_index = ids.index(prefill['customer_id']) if prefill.get('customer_id') in ids else None
        customer_id = st.selectbox("Customer", ids, index=default_index, format_func=labels.get)
        accounts = [a.get('name', '') for a in services.orders.list_accounts()]
        account_name = st.selectbox("Account", accounts + ["➕ New account"]) if accounts else "➕ New account"
        if account_name == "➕ New account":
            account_name = st.text_input("New account name")
        channel = st.radio("Order Type", [c.value for c in Channel], horizontal=True,
                           index=[c.value for c in Channel].index(prefill.get('channel', 'B')))

        c1, c2, c3 = st.columns(3)
        gross = c1.number_input("Total SR", min_value=0.0, step=1.0)
        pieces = c2.number_input("Pieces", min_value=0, step=1)
        deposit = c3.number_input("Deposit EGP", min_value=0.0, step=5.0,
                                  value=float(prefill.get('deposit_paid') or 0.0))
        c1, c2, c3 = st.columns(3)
        discount1 = c1.number_input("Discount SR", min_value=0.0, step=1.0)
        discount2 = c2.number_input("Discount 2 SR", min_value=0.0, step=1.0)
        discount3 = c3.number_input("Discount 3 SR", min_value=0.0, step=1.0)
        c1, c2, c3 = st.columns(3)
        coupon = c1.number_input("Coupon SR", min_value=0.0, step=1.0)
        paid_to_source = c2.number_input("Paid To Website", min_value=0.0, step=1.0)
        extra = c3.number_input("Extra SR", min_value=0.0, step=1.0)
        tracking = st.text_input("Tracking numbers (comma separated)")

    with col2:
        st.subheader("Order Summary")
        with st.container(border=True):
            if st.button("💾 Create Order", type="primary", use_container_width=True):
                payload = {
                    'customer_id': customer_id,
                    'account_name': account_name,
                    'channel': channel,
                    'gross_amount': gross,
                    'pieces': pieces,
                    'deposit_paid': deposit,
                    'discount1': discount1,
                    'discount2': discount2,
                    'discount3': discount3,
                    'coupon': coupon,
                    'paid_to_source': paid_to_source,
                    'extra_amount': extra,
                    'tracking_numbers': tracking.split(','),
                    'existing_order_id': prefill.get('existing_order_id'),
                    'upload_id': prefill.get('upload_id'),
                }
                try:
                    order = services.orders.create_order(payload)
                except OrderDeskError as e:
                    st.error(str(e))
                else:
                    st.session_state.pop('prefill', None)
                    m1, m2 = st.columns(2)
                    m1.metric("Total EGP", f"{order.financials.total_amount:,.0f}")
                    m2.metric("Outstanding", f"{order.financials.outstanding_amount:,.0f}")
                    st.success(f"Order {order.order_id} created")
                    with st.expander("🔍 Calculation Details"):
                        st.code(order.financials.get_trace_text())
                    link = whatsapp_link(order.phone, order_placed_message(order, settings_doc), prefix)
                    if link:
                        st.link_button("📲 Send WhatsApp confirmation", link)
            else:
                st.caption("Fill in the order and press Create.")


# ============================================================================
# TABS 2-3: CHANNEL DASHBOARDS
# ============================================================================
def channel_dashboard(channel: Channel):
    key = channel.value
    c1, c2, c3, c4 = st.columns([1, 1, 1, 1])
    status = c1.selectbox("Status", ["All"] + [s.value for s in OrderStatus], key=f"status_{key}")
    date_from = c2.date_input("From", value=None, key=f"from_{key}")
    date_to = c3.date_input("To", value=None, key=f"to_{key}")
    sheet_filter = c4.text_input("Sheet", key=f"sheet_{key}")

    orders = services.orders.list_orders(
        channel=channel,
        status=None if status == "All" else status,
        date_from=date_from,
        date_to=date_to,
        sheet=sheet_filter,
        by_sheet=True,
    )
    if not orders:
        st.info("No orders match the filters.")
        return

    original = order_rows(orders)
    m1, m2, m3, m4 = st.columns(4)
    m1.metric("Orders", len(orders))
    m2.metric("Pieces", f"{original['Pieces'].sum():,.0f}")
    m3.metric("Total EGP", f"{original['Total EGP'].fillna(0).sum():,.0f}")
    m4.metric("Outstanding", f"{original['Outstanding'].fillna(0).sum():,.0f}")

    edited = st.data_editor(
        original,
        use_container_width=True,
        hide_index=True,
        disabled=[c for c in original.columns if c not in EDITABLE_COLUMNS],
        column_config={
            "ID": None,
            "Status": st.column_config.SelectboxColumn("Status", options=[s.value for s in OrderStatus]),
        },
        key=f"grid_{key}",
    )
    if st.button("💾 Save Changes", key=f"save_{key}"):
        changed, failed = save_grid_edits(original, edited)
        st.toast(f"{changed} fields saved, {failed} failed")

    st.divider()
    codes = {row['Code']: row['ID'] for _, row in original.iterrows()}
    selected = st.multiselect("Selected orders", list(codes), key=f"select_{key}")
    ids = [codes[c] for c in selected]
    p1, p2 = st.columns(2)
    with p1:
        if st.button("📦 Place Selected Orders", key=f"place_{key}", disabled=not ids):
            try:
                result, placed = services.orders.place_orders(ids)
            except OrderDeskError as e:
                st.error(str(e))
            else:
                st.toast(result.summary())
                for reason in result.failed.values():
                    st.error(reason)
                for order, link in placed:
                    if link:
                        st.link_button(f"📲 Confirm {order.order_id} with {order.customer_name}", link)
    with p2:
        if st.button("🧾 Create Sheet", key=f"sheet_create_{key}", disabled=not ids):
            try:
                sheet = services.orders.create_sheet(ids)
                st.success(f"Sheet {sheet.code} created ({sheet.total_pieces:g} pieces)")
            except OrderDeskError as e:
                st.error(str(e))

    b1, b2, b3 = st.columns(3)
    with b1:
        new_status = st.selectbox("New status", [s.value for s in OrderStatus], key=f"bulk_status_{key}")
        if st.button("Apply Status", key=f"apply_{key}", disabled=not ids):
            result, outcomes = services.orders.set_status_bulk(ids, new_status)
            st.toast(result.summary())
            for outcome in outcomes:
                show_notifications(outcome)
    with b2:
        group_name = st.text_input("Group name", key=f"group_{key}")
        group_tracking = st.text_input("Tracking number", key=f"group_tracking_{key}")
        if st.button("🔗 Merge", key=f"merge_{key}", disabled=len(ids) < 2):
            try:
                group = services.orders.merge_orders(ids, group_name, group_tracking)
                st.success(f"Merged into {group.name}")
            except OrderDeskError as e:
                st.error(str(e))
    with b3:
        if st.button("🗑️ Delete", key=f"delete_{key}", disabled=not ids):
            result = services.orders.delete_orders(ids)
            st.toast(result.summary())
            st.rerun()

    groups = [g for g in services.orders.list_merged_groups() if g.channel is channel]
    if groups:
        with st.expander(f"🔗 Merged groups ({len(groups)})"):
            for group in groups:
                g1, g2 = st.columns([4, 1])
                g1.caption(f"**{group.name}** · {len(group.order_ids)} orders · "
                           f"{group.total_pieces:g} pieces · {group.tracking_number or 'no tracking'}")
                if g2.button("Unmerge", key=f"unmerge_{group.id}"):
                    services.orders.unmerge(group.id)
                    st.rerun()

    sheets = services.orders.list_sheets(channel)
    if sheets:
        with st.expander(f"🧾 Sheets ({len(sheets)})"):
            for sheet in sheets:
                totals = services.orders.sheet_totals(sheet)
                s1, s2 = st.columns([4, 1])
                s1.caption(f"**{sheet.code}** · {totals['orders']} orders · {totals['pieces']:g} pieces · "
                           f"{totals['gross_amount']:,.0f} SR · outstanding {totals['outstanding']:,.0f} EGP")
                if s2.button("Delete", key=f"delete_sheet_{sheet.id}"):
                    services.orders.delete_sheet(sheet.id)
                    st.rerun()


with tab_barry:
    channel_dashboard(Channel.BARRY)

with tab_gawy:
    channel_dashboard(Channel.GAWY)


# ============================================================================
# TAB 4: ACCOUNTS
# ============================================================================
with tab_accounts:
    st.subheader("📒 Accounts")
    report = account_report(services.orders.list_orders())
    if report:
        st.dataframe(pd.DataFrame([{
            'Account': s.totals.label,
            'Orders': s.totals.count,
            'Pieces': s.totals.pieces,
            'Total SR': s.totals.gross_amount,
            'Discounts SR': s.totals.total_discounts,
            'Coupon EGP': s.totals.coupon_target,
            'Deposit EGP': s.totals.deposit,
            'Grand Total': s.grand_total,
        } for s in report]), use_container_width=True, hide_index=True)

        for summary in report:
            with st.expander(f"{summary.totals.label} · by day"):
                for day in summary.days:
                    st.markdown(f"**{day.label}** · {day.count} orders")
                    busy = [h for h in day.hours if h.count]
                    if busy:
                        st.dataframe(pd.DataFrame([{
                            'Hour': h.label, 'Orders': h.count, 'Pieces': h.pieces,
                            'Total SR': h.gross_amount, 'Coupon EGP': h.coupon_target, 'Deposit': h.deposit,
                        } for h in busy]), use_container_width=True, hide_index=True)
    else:
        st.info("No orders yet.")


# ============================================================================
# TAB 5: DISTRIBUTION
# ============================================================================
with tab_dist:
    st.subheader("🚚 In Distribution")
    groups = distribution_report(services.orders.list_orders())
    if groups:
        overall = grand_totals(groups)
        m1, m2, m3 = st.columns(3)
        m1.metric("Clients", len(groups))
        m2.metric("Pieces", f"{overall.pieces:,.0f}")
        m3.metric("Outstanding", f"{overall.outstanding:,.0f}")
        st.dataframe(pd.DataFrame([{
            'Client': g.key[0],
            'Type': g.key[1],
            'Orders': g.count,
            'Pieces': g.pieces,
            'Total EGP': g.total,
            'Deposit EGP': g.deposit,
            'Paid After Delivery': g.paid_after_delivery,
            'Outstanding': g.outstanding,
        } for g in groups]), use_container_width=True, hide_index=True)
    else:
        st.info("No orders in distribution.")


# ============================================================================
# TAB 6: UPLOADS
# ============================================================================
with tab_uploads:
    st.subheader("📥 Payment Uploads")
    counts = services.uploads.status_counts()
    cols = st.columns(len(counts))
    for col, (label, count) in zip(cols, counts.items()):
        col.metric(label, count)

    status_filter = st.selectbox("Show", ["All"] + list(counts), index=1)
    for upload in services.uploads.list_uploads(status_filter):
        with st.container(border=True):
            u1, u2 = st.columns([3, 1])
            u1.markdown(f"**{upload.get('client_name')}** ({upload.get('client_code')}) · "
                        f"{float(upload.get('payment_amount') or 0):,.0f} EGP · {upload.get('order_id')}")
            u1.caption(f"{upload['status']} · {(upload.get('created_at') or '')[:16]}")
            for url in upload.get('payment_images') or []:
                u1.image(url, width=160)
            if upload['status'] != UploadStatus.UNDER_APPROVAL.value:
                continue
            if u2.button("✅ Approve", key=f"approve_{upload['id']}"):
                try:
                    result = services.uploads.approve(upload['id'])
                except OrderDeskError as e:
                    st.error(str(e))
                else:
                    if result.requires_order_completion:
                        st.session_state.prefill = result.prefill
                        st.info("Open the New Order tab to complete this order.")
                    else:
                        st.success("Payment added to the order deposit")
            if u2.button("❌ Reject", key=f"reject_{upload['id']}"):
                try:
                    _, link = services.uploads.reject(upload['id'])
                except OrderDeskError as e:
                    st.error(str(e))
                else:
                    if link:
                        st.link_button("📲 Tell the customer", link)


# ============================================================================
# TAB 7: SETTINGS
# ============================================================================
with tab_settings:
    st.header("System Settings")
    with st.form("settings_form"):
        c1, c2 = st.columns(2)
        updates = {}
        for i, key in enumerate([
            'barryRetail', 'gawyRetail',
            'barryWholesaleBelow1500', 'barryWholesaleAbove1500',
            'gawyWholesaleBelow1500', 'gawyWholesaleAbove1500',
            'wholesaleThreshold', 'extraMultiplier',
            'paidToWebsite', 'shipping', 'coupon',
        ]):
            col = c1 if i % 2 == 0 else c2
            updates[key] = col.number_input(key, value=float(settings_doc.get(key) or 0), step=0.25)
        for key in ('orderPlacedMessageWholesale', 'orderPlacedMessageRetailWithDeposit',
                    'orderPlacedMessageRetailNoDeposit', 'inDistributionMessage', 'paymentRejectedMessage'):
            updates[key] = st.text_area(key, value=settings_doc.get(key, ''))
        recompute = st.checkbox("Recompute every order with the new rates")
        if st.form_submit_button("💾 Save Settings", type="primary"):
            try:
                services.settings_service.save(updates)
            except OrderDeskError as e:
                st.error(str(e))
            else:
                st.success("Settings saved")
                if recompute:
                    with st.spinner("Recomputing..."):
                        result = services.updater.recompute_all()
                    st.toast(f"Recompute: {result.summary()}")

    st.caption(f"Data directory: {services.settings.data_dir} · "
               f"retention {services.settings.retention_days} days")
