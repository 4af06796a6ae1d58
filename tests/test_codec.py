import hashlib
import re
import unittest

import audioscrobbler_client as asc
from tests.helpers import HANDSHAKE_OK, TOKEN, make_record


def md5(s):
    return hashlib.md5(s.encode("utf-8")).hexdigest()


class HandshakeRequestTests(unittest.TestCase):
    def test_auth_token_is_md5_of_password_md5_and_timestamp(self):
        token = asc.auth_token(md5("secret"), 1200000000)
        self.assertEqual(token, md5(md5("secret") + "1200000000"))
        self.assertRegex(token, r"^[0-9a-f]{32}$")

    def test_handshake_url(self):
        url = asc.build_handshake_url("user", md5("secret"), "tst", "1.0", 1200000000)
        expected = (
            "http://post.audioscrobbler.com/?hs=true&p=1.2&c=tst&v=1.0&u=user"
            "&t=1200000000&a=" + md5(md5("secret") + "1200000000")
        )
        self.assertEqual(url, expected)

    def test_username_is_quoted(self):
        url = asc.build_handshake_url("a user&co", md5("x"), "tst", "1.0", 1, base_url="http://hs.example/")
        self.assertTrue(url.startswith("http://hs.example/?hs=true"))
        self.assertIn("&u=a%20user%26co&", url)


class HandshakeResponseTests(unittest.TestCase):
    def test_ok_with_two_urls(self):
        outcome = asc.parse_handshake_response(HANDSHAKE_OK)
        self.assertIs(outcome.status, asc.HandshakeStatus.OK)
        self.assertEqual(
            outcome.session,
            asc.Authenticated(TOKEN, "post2.audioscrobbler.com", 8080, "protocol_1.2"),
        )

    def test_default_port_and_now_playing_url_discarded(self):
        body = "OK\nsessiontoken\nhttp://np.example/path\nhttp://post.example/submit\n"
        outcome = asc.parse_handshake_response(body)
        self.assertIs(outcome.status, asc.HandshakeStatus.OK)
        self.assertEqual(outcome.session.session_token, "sessiontoken")
        self.assertEqual(outcome.session.submit_host, "post.example")
        self.assertEqual(outcome.session.submit_port, 80)
        self.assertEqual(outcome.session.submit_path, "submit")

    def test_crlf_line_endings(self):
        body = "OK\r\ntok\r\nhttp://np.example/np\r\nhttp://post.example:81/sub\r\n"
        outcome = asc.parse_handshake_response(body)
        self.assertEqual(outcome.session, asc.Authenticated("tok", "post.example", 81, "sub"))

    def test_single_url_is_retryable(self):
        body = "OK\nsessiontoken\nhttp://post.example/submit\n"
        outcome = asc.parse_handshake_response(body)
        self.assertIs(outcome.status, asc.HandshakeStatus.RETRY)
        self.assertIsNone(outcome.session)

    def test_missing_token_is_retryable(self):
        self.assertIs(asc.parse_handshake_response("OK\n").status, asc.HandshakeStatus.RETRY)
        self.assertIs(asc.parse_handshake_response("OK").status, asc.HandshakeStatus.RETRY)

    def test_garbage_and_empty_are_retryable(self):
        for body in ("", "<html>502 Bad Gateway</html>", "UPTODATE\n"):
            self.assertIs(asc.parse_handshake_response(body).status, asc.HandshakeStatus.RETRY, body)

    def test_bad_port_is_retryable(self):
        body = "OK\ntok\nhttp://np.example/np\nhttp://post.example:0/sub\n"
        self.assertIs(asc.parse_handshake_response(body).status, asc.HandshakeStatus.RETRY)

    def test_failed_carries_message(self):
        outcome = asc.parse_handshake_response("FAILED Server maintenance\n")
        self.assertIs(outcome.status, asc.HandshakeStatus.RETRY)
        self.assertEqual(outcome.message, "Server maintenance")

    def test_fatal_markers(self):
        cases = {
            "BADAUTH\n": asc.FatalReason.AUTH_FAILED,
            "BANNED\n": asc.FatalReason.BANNED,
            "BADTIME\n": asc.FatalReason.CLOCK_SKEW,
        }
        for body, reason in cases.items():
            outcome = asc.parse_handshake_response(body)
            self.assertIs(outcome.status, asc.HandshakeStatus.FATAL)
            self.assertIs(outcome.fatal, reason)

    def test_marker_priority(self):
        self.assertIs(
            asc.parse_handshake_response("FAILED busy\nBADAUTH\n").status, asc.HandshakeStatus.RETRY
        )
        self.assertIs(asc.parse_handshake_response("BANNED BADAUTH").fatal, asc.FatalReason.AUTH_FAILED)
        self.assertIs(asc.parse_handshake_response("BADTIME BANNED").fatal, asc.FatalReason.BANNED)
        self.assertIs(asc.parse_handshake_response(HANDSHAKE_OK + "BADTIME").fatal, asc.FatalReason.CLOCK_SKEW)


class ParseUrlTests(unittest.TestCase):
    def test_host_port_path(self):
        self.assertEqual(
            asc.parse_url("http://62.216.251.205:80/protocol_1.2"),
            ("62.216.251.205", 80, "protocol_1.2"),
        )

    def test_nested_path_and_query_kept(self):
        self.assertEqual(asc.parse_url("http://h.example/a/b?x=1"), ("h.example", 80, "a/b?x=1"))

    def test_rejects_unusable_urls(self):
        for url in ("ftp://h.example/x", "http://", "http://h.example:abc/x", "http://h.example:0/x"):
            with self.assertRaises(asc.ProtocolError, msg=url):
                asc.parse_url(url)


class SubmissionRequestTests(unittest.TestCase):
    def test_single_record_body(self):
        body = asc.build_submission_body("TOK", [make_record(0)])
        self.assertEqual(
            body,
            "s=TOK&a%5B0%5D=Artist0&t%5B0%5D=Title0&i%5B0%5D=1200000000&o%5B0%5D=P"
            "&r%5B0%5D=&l%5B0%5D=200&b%5B0%5D=Album&n%5B0%5D=1&m%5B0%5D=",
        )

    def test_indices_follow_queue_order(self):
        body = asc.build_submission_body("TOK", [make_record(0), make_record(1)])
        self.assertIn("a%5B0%5D=Artist0", body)
        self.assertIn("a%5B1%5D=Artist1", body)
        self.assertLess(body.index("a%5B0%5D"), body.index("a%5B1%5D"))
        self.assertEqual(set(re.findall(r"%5B(\d+)%5D", body)), {"0", "1"})

    def test_values_are_sent_as_captured(self):
        rec = make_record(0, artist=asc.encode_field("AC/DC"), title=asc.encode_field("T.N.T. & more"))
        body = asc.build_submission_body("TOK", [rec])
        self.assertIn("a%5B0%5D=AC%2FDC&", body)
        self.assertIn("t%5B0%5D=T.N.T.%20%26%20more&", body)

    def test_request_uses_session_path(self):
        session = asc.Authenticated("TOK", "post.example", 80, "protocol_1.2")
        path, body = asc.build_submission_request(session, [make_record(0)])
        self.assertEqual(path, "protocol_1.2")
        self.assertTrue(body.startswith("s=TOK&a%5B0%5D="))

    def test_empty_batch(self):
        self.assertEqual(asc.build_submission_body("TOK", []), "s=TOK")


class SubmissionResponseTests(unittest.TestCase):
    def test_ok(self):
        self.assertIs(asc.parse_submission_response("OK\n").status, asc.SubmissionStatus.SUCCESS)

    def test_bad_session_beats_ok(self):
        outcome = asc.parse_submission_response("BADSESSION\nOK\n")
        self.assertIs(outcome.status, asc.SubmissionStatus.BAD_SESSION)

    def test_failed_beats_everything(self):
        outcome = asc.parse_submission_response("OK\nBADSESSION\nFAILED Plugin bug: Not all request variables are set\n")
        self.assertIs(outcome.status, asc.SubmissionStatus.FAILURE)
        self.assertEqual(outcome.message, "FAILED Plugin bug: Not all request variables are set")

    def test_unknown_body_is_failure_with_raw_message(self):
        outcome = asc.parse_submission_response("<html>oops</html>\n")
        self.assertIs(outcome.status, asc.SubmissionStatus.FAILURE)
        self.assertEqual(outcome.message, "<html>oops</html>")


class UtilityTests(unittest.TestCase):
    def test_encode_field(self):
        self.assertEqual(asc.encode_field("Sigur Rós"), "Sigur%20R%C3%B3s")
        self.assertEqual(asc.encode_field("don't (stop)"), "don't%20(stop)")
        self.assertEqual(asc.encode_field(None), "")
        self.assertEqual(asc.encode_field(7), "7")

    def test_redact(self):
        redacted = asc.redact("s=abc&a%5B0%5D=X")
        self.assertEqual(redacted, "s=***&a%5B0%5D=X")
        self.assertEqual(asc.redact("http://h/?hs=true&u=me&a=deadbeef"), "http://h/?hs=true&u=me&a=***")
        self.assertNotIn("abc", redacted)


if __name__ == "__main__":
    unittest.main()
