"""Регистрационный бот сообщества: записи на мероприятия, напоминания и переписка с админами."""
