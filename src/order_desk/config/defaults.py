"""
Default contents of the system settings document.

Seeded into the settings store the first time it is read; admins may
rewrite any key afterwards through the settings API or dashboard.
"""

UPLOAD_LINK = "https://orders-tracking-system.vercel.app/upload"

DEFAULT_SETTINGS = {
    # Pricing configuration (SR → EGP)
    "barryWholesaleBelow1500": 12.5,
    "barryWholesaleAbove1500": 12.25,
    "gawyWholesaleBelow1500": 14,
    "gawyWholesaleAbove1500": 13.5,
    "barryRetail": 14.5,
    "gawyRetail": 15.5,
    "wholesaleThreshold": 1500,
    "extraMultiplier": 2,

    # Additional charges; these two settings are display-only, no formula reads them
    "paidToWebsite": 12,
    "shipping": 12.7,
    "coupon": 12,

    # WhatsApp templates
    "orderPlacedMessageWholesale": (
        "اهلا {customerName} ({customerCode})\n"
        "عدد القطع ({pieces})\n"
        "قيمة الطلب بالريال {totalSR}\n"
        "بدون كود {extraSR}\n"
        "قيمة الطلب بالمصرى {totalEGP}\n"
        "الاجمالى المصرى {totalEGPPlusExtra}\n"
        "العربون {deposit}\n"
        "المتبقى من الطلب {outstanding}\n"
        "بعد دفع العربون، يرجى إرفاق لقطة شاشة للمعاملة وعناصر الطلب عبر الرابط التالي للتأكيد: "
        + UPLOAD_LINK
    ),
    "orderPlacedMessageRetailNoDeposit": (
        "Hi {customerName} ({customerCode})\n"
        "This is a confirmation message from us to make sure that every detail "
        "about your order is exactly as you wanted.\n"
        "no of items: {pieces}\n"
        "total: {totalEGP}\n\n"
        "You won't be able to change your order once you confirm.\n\n"
        "You are marked as a VIP client on our list..no deposit is needed.\n\n"
        "Thank you for purchasing from us."
    ),
    "orderPlacedMessageRetailWithDeposit": (
        "Hi {customerName} ({customerCode})\n"
        "This is a confirmation message from us to make sure that every detail "
        "about your order is exactly as you wanted.\n"
        "no of items: {pieces}\n"
        "total: {totalEGP}\n"
        "paid deposit: {deposit}\n"
        "outstanding: {outstanding}\n\n"
        "You won't be able to change your order once you confirm.\n\n"
        "A 50% deposit is required to complete the ordering process.\n"
        "After deposit payment, kindly attach transaction screenshot and order "
        "items to the following link for confirmation: " + UPLOAD_LINK + "\n\n"
        "Thank you for purchasing from us."
    ),
    "orderPlacedMessage": (
        "📦 Hello {customerName} ({customerCode}), your order ({orderId}) "
        "has been *placed* successfully! ✅"
    ),
    "paymentRejectedMessage": (
        "Order not placed as attached deposit photo is inconsistent with the "
        "entered payment amount.\n\n"
        "Kindly re-upload the right deposit amount on the same link"
    ),
    "inDistributionMessage": (
        "Your order ({orderId}) has arrived. It will be delivered to you in 1-3 days. "
        "Kindly transfer the outstanding amount ({outstandingAmount} EGP) and upload "
        "the receipt screenshot on the following link: " + UPLOAD_LINK
    ),

    # Auto-generated codes
    "customerCodePrefixRetail": "RE",
    "customerCodePrefixWholesale": "WS",
    "orderCodePrefixBarry": "B",
    "orderCodePrefixGawy": "G",

    # Currencies
    "defaultCurrency": "EGP",
    "secondaryCurrency": "SR",
}
