FREE_DOWNLOAD_USED_MESSAGE = (
    "You have used your free download. Upgrade to Premium for unlimited downloads."
)
FREE_RESUME_USED_MESSAGE = (
    "You have already used your free resume. "
    "Please upgrade to premium to generate more resumes."
)
FREE_QUOTA_DISABLED_MESSAGE = "Free usage is not available. Upgrade to Premium to continue."
SUBSCRIPTION_EXPIRED_DOWNLOAD_MESSAGE = (
    "Your premium subscription has expired. Renew to keep unlimited downloads."
)
SUBSCRIPTION_EXPIRED_RESUME_MESSAGE = (
    "Your premium subscription has expired. Renew to keep generating resumes."
)


def monthly_limit_message(monthly_limit: int) -> str:
    return (
        f"You have reached your monthly limit of {monthly_limit} resumes. "
        "Your limit will reset on the 1st of next month."
    )
