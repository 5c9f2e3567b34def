import sys
import unittest

from tests.test_admin_api import TestAdminAPI
from tests.test_app import TestApp
from tests.test_auth_api import TestProfileAPI, TestRegisterAndLogin, TestSearchAPI
from tests.test_comment_api import TestCommentAPI
from tests.test_like_notifications import TestLikeNotifications
from tests.test_models import TestPostModel, TestUserCascade, TestUserModel
from tests.test_notifications_api import TestNotificationsAPI
from tests.test_posts_api import (
    TestCreatePostApi,
    TestPostDetailApi,
    TestPostListApi,
    TestUpdateDeletePostApi,
)
from tests.test_repost_topic_api import TestRepostAPI, TestTopicAPI
from tests.test_upload_api import TestUploadAPI
from tests.test_utils import TestAllowedFile, TestHeadings, TestRenderMarkdown
from tests.test_view_tracking import TestViewTracking
from tests.test_views import TestAdminPages, TestViewActions, TestViews

TEST_CASES = [
    TestApp,
    TestUserModel,
    TestPostModel,
    TestUserCascade,
    TestPostListApi,
    TestCreatePostApi,
    TestUpdateDeletePostApi,
    TestPostDetailApi,
    TestCommentAPI,
    TestLikeNotifications,
    TestRepostAPI,
    TestTopicAPI,
    TestNotificationsAPI,
    TestUploadAPI,
    TestAdminAPI,
    TestRegisterAndLogin,
    TestProfileAPI,
    TestSearchAPI,
    TestViewTracking,
    TestHeadings,
    TestRenderMarkdown,
    TestAllowedFile,
    TestViews,
    TestViewActions,
    TestAdminPages,
]

if __name__ == "__main__":
    loader = unittest.TestLoader()
    suite = unittest.TestSuite()
    for test_case in TEST_CASES:
        suite.addTests(loader.loadTestsFromTestCase(test_case))

    runner = unittest.TextTestRunner(verbosity=2)
    result = runner.run(suite)
    sys.exit(0 if result.wasSuccessful() else 1)
