from unittest.mock import patch

from rakgame.core.error_handler import DatabaseError
from rakgame.ui.notifications import Notifier, StreamlitNotifier


def test_history_is_bounded():
    notifier = Notifier(history_size=2)
    for title in ('one', 'two', 'three'):
        notifier.info(title)

    assert [message.title for message in notifier.messages] == ['two', 'three']
    assert notifier.last().title == 'three'


def test_report_error_uses_mapped_description():
    notifier = Notifier()
    notifier.report_error(DatabaseError('rejected', error_code='ALREADY_EXISTS'))

    message = notifier.last()
    assert message.level == 'error'
    assert (message.title, message.description) == ('Database Error', 'This record already exists')


@patch('rakgame.ui.notifications.st')
def test_streamlit_notifier_flushes_pending_toasts(mock_st):
    notifier = StreamlitNotifier()
    notifier.success('Game added successfully')
    notifier.error('Network Error', 'Service unavailable')

    assert notifier.flush() == 2
    mock_st.toast.assert_any_call('Game added successfully', icon='✅')
    mock_st.toast.assert_any_call('**Network Error**: Service unavailable', icon='⚠️')

    assert notifier.flush() == 0
    assert mock_st.toast.call_count == 2
    assert len(notifier.messages) == 2
