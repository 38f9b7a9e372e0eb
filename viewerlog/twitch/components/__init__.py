"""EventSub listener components loaded by the bot."""
