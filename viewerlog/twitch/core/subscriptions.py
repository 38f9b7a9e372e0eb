from twitchio import eventsub


def get_channel_subscriptions(
    broadcaster_user_id: str, bot_id: str
) -> list[eventsub.SubscriptionPayload]:
    """EventSub subscriptions needed to track one channel."""
    return [
        eventsub.ChatMessageSubscription(broadcaster_user_id=broadcaster_user_id, user_id=bot_id),
        eventsub.StreamOnlineSubscription(broadcaster_user_id=broadcaster_user_id),
        eventsub.StreamOfflineSubscription(broadcaster_user_id=broadcaster_user_id),
        eventsub.ChannelUpdateSubscription(broadcaster_user_id=broadcaster_user_id),
        eventsub.ChannelPointsRedeemAddSubscription(broadcaster_user_id=broadcaster_user_id),
        eventsub.ChannelBanSubscription(broadcaster_user_id=broadcaster_user_id),
    ]
